from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Plan
from .services.links import MAX_EXPIRES_IN_SECONDS, MAX_VIEWS_LIMIT


class LinkCreate(BaseModel):
    url: str = Field(..., min_length=1)
    expires_in: Optional[int] = Field(
        None, le=MAX_EXPIRES_IN_SECONDS, description="Seconds until expiry; non-positive means never"
    )
    max_views: Optional[int] = Field(None, gt=0, le=MAX_VIEWS_LIMIT)
    password: Optional[str] = None
    custom_slug: Optional[str] = Field(None, min_length=3, max_length=64, pattern="^[a-zA-Z0-9_-]+$")


class LinkResponse(BaseModel):
    id: str
    short_url: str
    original_url: str
    created_at: int
    expires_at: Optional[int]
    max_views: Optional[int]
    has_password: bool


class LinkSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    original_url: str
    created_at: int
    expires_at: Optional[int]
    max_views: Optional[int]
    current_views: int
    is_active: bool


class Visit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accessed_at: int
    ip_address: Optional[str]
    user_agent: Optional[str]
    referer: Optional[str]


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_views: int
    max_views: Optional[int]
    remaining_views: Optional[int]
    created_at: int
    expires_at: Optional[int]
    is_active: bool
    original_url: str
    recent_visits: List[Visit]


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str]
    plan: Plan
    email_verified: bool
    created_at: int
    last_login: Optional[int] = None


class UserStatsResponse(BaseModel):
    total_links: int
    total_views: int


class ProfileResponse(UserResponse):
    stats: UserStatsResponse


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    password: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str
