from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from campus_access.auth.dependencies import (
    get_college_service,
    get_current_actor,
    get_membership_service,
    get_report_service,
)
from campus_access.auth.policy import Actor
from campus_access.models.membership import CollegeRole
from campus_access.models.user import GlobalRole
from campus_access.services.appointment_service import parse_enum
from campus_access.services.college_service import CollegeService
from campus_access.services.membership_service import Member, MembershipService
from campus_access.services.report_service import ReportService

router = APIRouter(tags=['college-manager'])


class CollegeResponse(BaseModel):
    id: int
    name: str
    code: str
    location: str
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    manager_id: int | None = None
    created_by: int
    operating_hours: dict | None = None
    settings: dict | None = None
    timezone: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UpdateCollegeRequest(BaseModel):
    name: str | None = None
    location: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    operating_hours: dict | None = None
    settings: dict | None = None
    timezone: str | None = None


class DepartmentResponse(BaseModel):
    id: int
    college_id: int
    name: str
    code: str
    description: str | None = None
    contact_user_id: int | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    settings: dict | None = None
    is_active: bool
    sort_order: int | None = None

    class Config:
        from_attributes = True


class CreateDepartmentRequest(BaseModel):
    name: str
    code: str
    description: str | None = None
    contact_user_id: int | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    settings: dict | None = None
    sort_order: int | None = None


class UpdateDepartmentRequest(BaseModel):
    name: str | None = None
    code: str | None = None
    description: str | None = None
    contact_user_id: int | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    settings: dict | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class CreateMemberRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    phone: str | None = None
    enrollment_number: str | None = None
    department_id: int | None = None
    role: str | None = None
    college_role: str | None = None
    permissions: dict | None = None
    shift: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized


class MemberStatusRequest(BaseModel):
    is_active: bool


class MemberResponse(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    role: GlobalRole
    is_active: bool
    college_id: int
    college_role: CollegeRole
    department_id: int | None = None
    enrollment_number: str | None = None
    membership_active: bool
    shift: str | None = None
    permissions: dict
    joined_at: datetime | None = None
    left_at: datetime | None = None

    @classmethod
    def from_member(cls, member: Member) -> 'MemberResponse':
        user, membership = member.user, member.membership
        return cls(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            is_active=user.is_active,
            college_id=membership.college_id,
            college_role=membership.college_role,
            department_id=membership.department_id,
            enrollment_number=membership.enrollment_number,
            membership_active=membership.is_active,
            shift=membership.shift.value if membership.shift else None,
            permissions=membership.permissions.model_dump(),
            joined_at=membership.joined_at,
            left_at=membership.left_at,
        )


@router.get('/college', response_model=CollegeResponse)
def my_college(
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.get_my_college(actor)


@router.patch('/college', response_model=CollegeResponse)
def update_my_college(
    payload: UpdateCollegeRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    college = service.get_my_college(actor)
    return service.update_college(actor, college.id, payload.model_dump(exclude_unset=True))


@router.post('/departments', response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: CreateDepartmentRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.create_department(actor, service.resolve_college(actor), payload.model_dump())


@router.get('/departments', response_model=list[DepartmentResponse])
def list_departments(
    include_inactive: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    return service.list_departments(actor, service.resolve_college(actor), include_inactive=include_inactive)


@router.patch('/departments/{department_id}', response_model=DepartmentResponse)
def update_department(
    department_id: int,
    payload: UpdateDepartmentRequest,
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    college_id = service.resolve_college(actor)
    return service.update_department(actor, college_id, department_id, payload.model_dump(exclude_unset=True))


@router.post('/department-managers', response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_department_manager(
    payload: CreateMemberRequest,
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: MembershipService = Depends(get_membership_service),
):
    member = service.create_department_manager(actor, colleges.resolve_college(actor), payload.model_dump())
    return MemberResponse.from_member(member)


@router.get('/department-managers', response_model=list[MemberResponse])
def list_department_managers(
    actor: Actor = Depends(get_current_actor),
    service: CollegeService = Depends(get_college_service),
):
    members = service.department_managers(actor, service.resolve_college(actor))
    return [MemberResponse.from_member(member) for member in members]


@router.post('/security-managers', response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_security_manager(
    payload: CreateMemberRequest,
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: MembershipService = Depends(get_membership_service),
):
    member = service.create_security_manager(actor, colleges.resolve_college(actor), payload.model_dump())
    return MemberResponse.from_member(member)


@router.post('/users', response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    payload: CreateMemberRequest,
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: MembershipService = Depends(get_membership_service),
):
    member = service.add_member(actor, colleges.resolve_college(actor), payload.model_dump())
    return MemberResponse.from_member(member)


@router.get('/users', response_model=list[MemberResponse])
def list_members(
    college_role: str | None = None,
    role: str | None = None,
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: MembershipService = Depends(get_membership_service),
):
    members = service.list_members(
        actor,
        colleges.resolve_college(actor),
        college_role=parse_enum(CollegeRole, college_role, 'college_role'),
        global_role=parse_enum(GlobalRole, role, 'role'),
    )
    return [MemberResponse.from_member(member) for member in members]


@router.patch('/users/{user_id}/status', response_model=MemberResponse)
def set_member_status(
    user_id: int,
    payload: MemberStatusRequest,
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: MembershipService = Depends(get_membership_service),
):
    member = service.set_member_status(actor, colleges.resolve_college(actor), user_id, payload.is_active)
    return MemberResponse.from_member(member)


@router.get('/dashboard')
def dashboard(
    actor: Actor = Depends(get_current_actor),
    colleges: CollegeService = Depends(get_college_service),
    service: ReportService = Depends(get_report_service),
):
    return service.college_dashboard(actor, colleges.resolve_college(actor))
