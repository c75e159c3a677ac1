from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from campus_access.auth.dependencies import get_college_service, get_current_actor, get_user_service
from campus_access.auth.policy import Actor
from campus_access.models.user import GlobalRole
from campus_access.routes.auth_routes import UserResponse
from campus_access.routes.college_manager_routes import (
    CollegeResponse,
    CreateMemberRequest,
    MemberResponse,
    UpdateCollegeRequest,
)
from campus_access.services.appointment_service import parse_enum
from campus_access.services.college_service import CollegeService
from campus_access.services.user_service import UserService

router = APIRouter(tags=['super-admin'])

MAX_COLLEGE_CODE_LENGTH = 10


class CreateCollegeRequest(BaseModel):
    name: str
    code: str
    location: str
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    operating_hours: dict | None = None
    settings: dict | None = None
    timezone: str | None = None

    @field_validator('code')
    @classmethod
    def validate_code(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not normalized or len(normalized) > MAX_COLLEGE_CODE_LENGTH:
            raise ValueError(f'Code is required and must be at most {MAX_COLLEGE_CODE_LENGTH} characters.')
        return normalized


class AdminUpdateCollegeRequest(UpdateCollegeRequest):
    code: str | None = None
    is_active: bool | None = None


@router.post('/colleges', response_model=CollegeResponse, status_code=status.HTTP_201_CREATED)
def create_college(
    payload: CreateCollegeRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.create_college(actor, payload.model_dump())


@router.get('/colleges', response_model=list[CollegeResponse])
def list_colleges(
    include_inactive: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.list_colleges(actor, include_inactive=include_inactive)


@router.get('/colleges/{college_id}', response_model=CollegeResponse)
def get_college(
    college_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.get_college(actor, college_id)


@router.patch('/colleges/{college_id}', response_model=CollegeResponse)
def update_college(
    college_id: int,
    payload: AdminUpdateCollegeRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.update_college(actor, college_id, payload.model_dump(exclude_unset=True))


@router.delete('/colleges/{college_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_college(
    college_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
) -> None:
    service.delete_college(actor, college_id)


@router.post('/colleges/{college_id}/admins', response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_college_manager(
    college_id: int,
    payload: CreateMemberRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return MemberResponse.from_member(service.create_college_manager(actor, college_id, payload.model_dump()))


@router.get('/college-admins', response_model=list[MemberResponse])
def list_college_managers(
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return [MemberResponse.from_member(member) for member in service.list_college_managers(actor)]


@router.get('/users', response_model=list[UserResponse])
def list_users(
    role: str | None = None,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.list_users(actor, role=parse_enum(GlobalRole, role, 'role'))


@router.delete('/users/{user_id}', response_model=UserResponse)
def deactivate_user(
    user_id: int,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.deactivate(actor, user_id)


@router.get('/stats')
def platform_stats(
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.college_stats(actor)
