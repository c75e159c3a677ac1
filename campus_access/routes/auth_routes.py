from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator

from campus_access.auth.dependencies import get_current_actor, get_user_service
from campus_access.auth.policy import Actor
from campus_access.models.membership import CollegeRole
from campus_access.models.user import GlobalRole
from campus_access.services.user_service import UserService

router = APIRouter(tags=['auth'])


class RegisterRequest(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    phone: str | None = None
    college_id: int | None = None
    college_role: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UpdateProfileRequest(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    role: GlobalRole
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class MembershipSummary(BaseModel):
    college_id: int
    college_role: CollegeRole
    department_id: int | None = None
    is_active: bool

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    user: UserResponse
    memberships: list[MembershipSummary]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse

    class Config:
        from_attributes = True


@router.post('/register', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, service: UserService = Depends(get_user_service)):
    return service.register(payload.model_dump())


@router.post('/login', response_model=TokenResponse)
def login(payload: LoginRequest, service: UserService = Depends(get_user_service)):
    return service.authenticate(payload.email, payload.password)


@router.get('/me', response_model=ProfileResponse)
def me(actor: Actor = Depends(get_current_actor), service: UserService = Depends(get_user_service)):
    user, memberships = service.profile(actor)
    return {'user': user, 'memberships': memberships}


@router.patch('/me', response_model=UserResponse)
def update_me(
    payload: UpdateProfileRequest,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.update_profile(actor, payload.model_dump(exclude_none=True))


@router.post('/password', status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: ChangePasswordRequest,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
) -> None:
    service.change_password(actor, payload.current_password, payload.new_password)
