from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field, field_validator

from campus_access.auth.dependencies import get_appointment_service, get_current_actor
from campus_access.auth.policy import Actor
from campus_access.models.appointment import AppointmentStatus, AppointmentType
from campus_access.routes.appointment_routes import AppointmentResponse
from campus_access.services.appointment_service import AppointmentService, parse_enum

router = APIRouter(tags=['security'])


class VerifyCodeRequest(BaseModel):
    code: str = Field(validation_alias=AliasChoices('code', 'apt_code', 'aptCode'))

    @field_validator('code')
    @classmethod
    def validate_code(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Appointment code is required.')
        return normalized


class VerificationResponse(BaseModel):
    appointment: AppointmentResponse
    is_today: bool
    can_check_in: bool
    can_check_out: bool

    class Config:
        from_attributes = True


@router.post('/checkin/{appointment_id}', response_model=AppointmentResponse)
def check_in(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.check_in(actor, appointment_id)


@router.post('/checkout/{appointment_id}', response_model=AppointmentResponse)
def check_out(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.check_out(actor, appointment_id)


@router.post('/verify-code', response_model=VerificationResponse)
def verify_code(
    payload: VerifyCodeRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.verify_code(actor, payload.code)


@router.get('/today', response_model=list[AppointmentResponse])
def todays_appointments(
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_today(actor)


@router.get('/my-appointments', response_model=list[AppointmentResponse])
def handled_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    type_filter: str | None = Query(default=None, alias='type'),
    college_id: int | None = None,
    date_from: datetime | None = Query(default=None, alias='from'),
    date_to: datetime | None = Query(default=None, alias='to'),
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_handled(
        actor,
        status=parse_enum(AppointmentStatus, status_filter, 'status'),
        appointment_type=parse_enum(AppointmentType, type_filter, 'type'),
        college_id=college_id,
        date_from=date_from,
        date_to=date_to,
    )
