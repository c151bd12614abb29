import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXPIRED = "expired"
    AUTH_REQUIRED = "auth_required"
    AUTH_FAILED = "auth_failed"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class TemplinkError(Exception):
    """Base for every failure the engines report to their callers.

    Callers switch on ``kind`` (or on the concrete class); ``code`` is a
    stable string for API clients. The message is for humans only.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Invalid input

class InvalidInput(TemplinkError):
    kind = ErrorKind.INVALID_INPUT
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidUrl(InvalidInput):
    code = "invalid_url"
    default_message = "Invalid URL: only absolute http and https links are allowed"


class InvalidSlug(InvalidInput):
    code = "invalid_slug"
    default_message = "Custom slug must be 3-64 characters of letters, digits, '_' or '-'"


class InvalidEmailFormat(InvalidInput):
    code = "invalid_email_format"
    default_message = "Invalid email format"


class PasswordTooWeak(InvalidInput):
    code = "password_too_weak"

    def __init__(self, min_length: int):
        super().__init__(f"Password must be at least {min_length} characters")
        self.min_length = min_length


class InvalidOrExpiredToken(InvalidInput):
    code = "invalid_or_expired_token"
    default_message = "Invalid or expired token"


# Not found

class LinkNotFound(TemplinkError):
    kind = ErrorKind.NOT_FOUND
    code = "link_not_found"
    default_message = "Link not found"


class UserNotFound(TemplinkError):
    kind = ErrorKind.NOT_FOUND
    code = "user_not_found"
    default_message = "User not found"


# Conflicts

class SlugTaken(TemplinkError):
    kind = ErrorKind.CONFLICT
    code = "slug_taken"
    default_message = "Custom slug already taken"


class EmailAlreadyRegistered(TemplinkError):
    kind = ErrorKind.CONFLICT
    code = "email_already_registered"
    default_message = "Email already registered"


class EmailAlreadyInUse(TemplinkError):
    kind = ErrorKind.CONFLICT
    code = "email_already_in_use"
    default_message = "Email already in use"


class EmailAlreadyVerified(TemplinkError):
    kind = ErrorKind.CONFLICT
    code = "email_already_verified"
    default_message = "Email already verified"


# Authentication / authorization

class AuthRequired(TemplinkError):
    kind = ErrorKind.AUTH_REQUIRED
    code = "auth_required"
    default_message = "Authentication required"


class InvalidSession(AuthRequired):
    code = "invalid_session"
    default_message = "Invalid or expired session"


class InvalidCredentials(TemplinkError):
    # Same message for unknown email and wrong password.
    kind = ErrorKind.AUTH_FAILED
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class IncorrectPassword(TemplinkError):
    kind = ErrorKind.AUTH_FAILED
    code = "incorrect_password"
    default_message = "Incorrect password"


class PlanUpgradeRequired(TemplinkError):
    kind = ErrorKind.FORBIDDEN
    code = "upgrade_required"

    def __init__(self, current_plan: str, required_plan: str):
        super().__init__(f"This feature requires {required_plan} plan or higher")
        self.current_plan = current_plan
        self.required_plan = required_plan


class IdentifierExhausted(TemplinkError):
    code = "identifier_exhausted"
    default_message = "Could not generate unique code"
