from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import AliasChoices, BaseModel, Field, field_validator

from campus_access.auth.dependencies import get_appointment_service, get_current_actor
from campus_access.auth.policy import Actor
from campus_access.models.appointment import AppointmentPriority, AppointmentStatus, AppointmentType
from campus_access.services.appointment_service import AppointmentService, CodeOutcome, parse_enum

router = APIRouter(tags=['appointments'])

MAX_DESCRIPTION_LENGTH = 2000


class GuestRequest(BaseModel):
    fullname: str
    identifier: str = Field(validation_alias=AliasChoices('identifier', 'id'))


class GuestResponse(BaseModel):
    fullname: str
    identifier: str


class CreateAppointmentRequest(BaseModel):
    college_id: int
    department_id: int | None = None
    title: str | None = None
    type: str | None = None
    priority: str | None = None
    description: str
    start_time: datetime
    end_time: datetime
    location: str | None = None
    guests: list[GuestRequest] = []
    attachment_urls: list[str] = []

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Description is required.')
        if len(normalized) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f'Description must be {MAX_DESCRIPTION_LENGTH} characters or fewer.')
        return normalized


class UpdateAppointmentRequest(BaseModel):
    title: str | None = None
    type: str | None = None
    priority: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = None
    guests: list[GuestRequest] | None = None
    attachment_urls: list[str] | None = None


class ReasonRequest(BaseModel):
    reason: str | None = None


class ApproveRequest(BaseModel):
    notes: str | None = None


class ValidateCodeRequest(BaseModel):
    apt_code: str = Field(validation_alias=AliasChoices('apt_code', 'aptCode'))


class AppointmentResponse(BaseModel):
    id: int
    title: str | None = None
    type: AppointmentType
    priority: AppointmentPriority
    reference_number: str
    display_code: str | None = None
    start_time: datetime
    end_time: datetime
    description: str
    college_id: int
    department_id: int | None = None
    department_name: str | None = None
    created_by: int
    location: str | None = None
    attachment_urls: list[str] = []
    guests: list[GuestResponse] = []
    status: AppointmentStatus
    apt_code: str | None = None
    apt_expires_at: datetime | None = None
    checked_in_at: datetime | None = None
    checked_in_by: int | None = None
    checked_out_at: datetime | None = None
    checked_out_by: int | None = None
    cancellation_reason: str | None = None
    details: dict | None = Field(default=None, serialization_alias='metadata')
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApprovalResponse(BaseModel):
    appointment: AppointmentResponse
    apt_code: str
    apt_expires_at: datetime

    class Config:
        from_attributes = True


class CodeCheckResponse(BaseModel):
    valid: bool
    outcome: CodeOutcome
    appointment: AppointmentResponse

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: CreateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create(actor, payload.model_dump())


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    college_id: int | None = None,
    department_id: int | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(
        actor,
        status=parse_enum(AppointmentStatus, status_filter, 'status'),
        college_id=college_id,
        department_id=department_id,
    )


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_mine(actor)


@router.get('/pending', response_model=list[AppointmentResponse])
def list_pending_appointments(
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_pending(actor)


@router.get('/reference/{reference_number}', response_model=AppointmentResponse)
def get_appointment_by_reference(
    reference_number: str,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_by_reference(actor, reference_number)


@router.post('/validate', response_model=CodeCheckResponse)
def validate_appointment_code(
    payload: ValidateCodeRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.validate_code(payload.apt_code, actor)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get(actor, appointment_id)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    payload: UpdateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.update(actor, appointment_id, payload.model_dump(exclude_unset=True))


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    permanent: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
) -> None:
    if permanent:
        service.destroy(actor, appointment_id)
    else:
        service.delete(actor, appointment_id)


@router.post('/{appointment_id}/approve', response_model=ApprovalResponse)
def approve_appointment(
    appointment_id: int,
    payload: ApproveRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.approve(actor, appointment_id, notes=payload.notes if payload else None)


@router.post('/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    payload: ReasonRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reject(actor, appointment_id, reason=payload.reason if payload else None)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    payload: ReasonRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel(actor, appointment_id, reason=payload.reason if payload else None)
