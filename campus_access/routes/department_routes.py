from datetime import datetime

from fastapi import APIRouter, Depends, Query

from campus_access.auth.dependencies import (
    get_appointment_service,
    get_college_service,
    get_current_actor,
    get_report_service,
)
from campus_access.auth.policy import Actor
from campus_access.models.appointment import AppointmentStatus
from campus_access.routes.appointment_routes import (
    AppointmentResponse,
    ApprovalResponse,
    ApproveRequest,
    ReasonRequest,
)
from campus_access.routes.college_manager_routes import DepartmentResponse
from campus_access.services.appointment_service import AppointmentService, parse_enum
from campus_access.services.college_service import CollegeService
from campus_access.services.report_service import ReportService

router = APIRouter(tags=['departments'])


@router.get('/college/{college_id}', response_model=list[DepartmentResponse])
def list_college_departments(
    college_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.list_departments(actor, college_id)


@router.get('/appointments', response_model=list[AppointmentResponse])
def department_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    department_id: int | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(
        actor,
        status=parse_enum(AppointmentStatus, status_filter, 'status'),
        department_id=department_id,
    )


@router.get('/pending-approvals', response_model=list[AppointmentResponse])
def pending_approvals(
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_pending(actor)


@router.post('/appointments/{appointment_id}/approve', response_model=ApprovalResponse)
def approve_department_appointment(
    appointment_id: int,
    payload: ApproveRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.approve(actor, appointment_id, notes=payload.notes if payload else None)


@router.post('/appointments/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_department_appointment(
    appointment_id: int,
    payload: ReasonRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reject(actor, appointment_id, reason=payload.reason if payload else None)


@router.post('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_department_appointment(
    appointment_id: int,
    payload: ReasonRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel(actor, appointment_id, reason=payload.reason if payload else None)


@router.get('/reports')
def department_report(
    date_from: datetime | None = Query(default=None, alias='from'),
    date_to: datetime | None = Query(default=None, alias='to'),
    department_id: int | None = None,
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
):
    return service.department_report(actor, date_from, date_to, department_id=department_id)


@router.get('/dashboard')
def department_dashboard(
    department_id: int | None = None,
    actor: Actor = Depends(get_current_actor),
    service: ReportService = Depends(get_report_service),
):
    return service.department_dashboard(actor, department_id=department_id)
