"""Typed failures raised by the services and mapped to HTTP responses in main."""

import enum


class DenyReason(str, enum.Enum):
    """Why the authorization policy refused an action."""
    NO_MEMBERSHIP = "no_membership"
    NOT_IN_DEPARTMENT = "not_in_department"
    WRONG_GLOBAL_ROLE = "wrong_global_role"
    WRONG_COLLEGE_ROLE = "wrong_college_role"
    NOT_OWNER = "not_owner"
    INACTIVE_ACCOUNT = "inactive_account"


class CampusAccessError(Exception):
    status_code = 500
    default_detail = "Unexpected error."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(CampusAccessError):
    status_code = 400
    default_detail = "Invalid request."


class TimeWindowError(CampusAccessError):
    status_code = 400
    default_detail = "Outside the appointment time window."


class AuthenticationError(CampusAccessError):
    status_code = 401
    default_detail = "Invalid authentication credentials."


class AuthorizationError(CampusAccessError):
    status_code = 403
    default_detail = "Access denied."

    def __init__(self, reason: DenyReason, detail: str | None = None):
        self.reason = reason
        super().__init__(detail or f"Access denied: {reason.value}.")


class NotFoundError(CampusAccessError):
    status_code = 404
    default_detail = "Not found."


class ConflictError(CampusAccessError):
    status_code = 409
    default_detail = "Conflicting state transition."


class AlreadyDoneError(ConflictError):
    default_detail = "Already done."


class DuplicateKeyError(ConflictError):
    default_detail = "A record with the same unique value already exists."
