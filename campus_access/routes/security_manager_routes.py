from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from campus_access.auth.dependencies import get_current_actor, get_membership_service, get_report_service
from campus_access.auth.policy import Actor
from campus_access.routes.college_manager_routes import CreateMemberRequest, MemberResponse
from campus_access.services.membership_service import MembershipService
from campus_access.services.report_service import ReportService

router = APIRouter(tags=['security-manager'])


class UpdatePersonnelRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    is_active: bool | None = None
    shift: str | None = None


class ShiftRequest(BaseModel):
    shift: str


@router.post('/personnel', response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_personnel(
    payload: CreateMemberRequest,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
):
    return MemberResponse.from_member(service.create_security_personnel(actor, payload.model_dump()))


@router.get('/personnel', response_model=list[MemberResponse])
def list_personnel(
    include_inactive: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
):
    members = service.list_security_personnel(actor, include_inactive=include_inactive)
    return [MemberResponse.from_member(member) for member in members]


@router.get('/personnel/{user_id}', response_model=MemberResponse)
def get_personnel(
    user_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
):
    return MemberResponse.from_member(service.get_security_personnel(actor, user_id))


@router.patch('/personnel/{user_id}', response_model=MemberResponse)
def update_personnel(
    user_id: int,
    payload: UpdatePersonnelRequest,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
):
    member = service.update_security_personnel(actor, user_id, payload.model_dump(exclude_unset=True))
    return MemberResponse.from_member(member)


@router.delete('/personnel/{user_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_personnel(
    user_id: int,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
) -> None:
    service.remove_security_personnel(actor, user_id)


@router.patch('/personnel/{user_id}/shift', response_model=MemberResponse)
def update_shift(
    user_id: int,
    payload: ShiftRequest,
    actor: Actor = Depends(get_current_actor),
    service: MembershipService = Depends(get_membership_service),
):
    return MemberResponse.from_member(service.update_shift(actor, user_id, payload.shift))


@router.get('/reports')
def security_report(
    date_from: datetime | None = Query(default=None, alias='from'),
    date_to: datetime | None = Query(default=None, alias='to'),
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
):
    return service.security_report(actor, date_from, date_to)
