"""
API request and response models for the Matcha REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
photos/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from photos.models import MAX_GALLERY_POSITION, MAX_PHOTOS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
BIRTHDATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


# ---------------------------------------------------------------------------
# Shared response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    timestamp: str


class OkResponse(BaseModel):
    ok: bool = True


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. Accepts an email or a username."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email_or_username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class UserResponse(BaseModel):
    """The authenticated user's own identity. Includes the email."""

    id: int
    email: str
    username: str
    email_verified: bool
    created_at: str


class AuthResponse(BaseModel):
    """Response for register and login."""

    user: UserResponse


class AvatarUrls(BaseModel):
    url: str
    thumb_url: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    user: UserResponse
    avatar: Optional[AvatarUrls] = None


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class GenderEnum(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class SexualPrefEnum(str, Enum):
    straight = "straight"
    gay = "gay"
    bisexual = "bisexual"
    other = "other"


class ProfileResponse(BaseModel):
    display_name: str
    gender: Optional[GenderEnum] = None
    sexual_pref: Optional[SexualPrefEnum] = None
    bio: str
    birthdate: Optional[str] = None
    fame_rating: int


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/me/profile. Only fields that are sent are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, max_length=50)
    gender: Optional[GenderEnum] = None
    sexual_pref: Optional[SexualPrefEnum] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    birthdate: Optional[str] = Field(default=None, pattern=BIRTHDATE_PATTERN)
    fame_rating: Optional[int] = Field(default=None, ge=0, le=100)


class PublicProfileResponse(BaseModel):
    """Another user's profile. Never carries the email address."""

    username: str
    profile: ProfileResponse
    avatar: Optional[AvatarUrls] = None


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------


class PhotoKindEnum(str, Enum):
    avatar = "avatar"
    gallery = "gallery"


class PhotoResponse(BaseModel):
    """One stored photo. url / thumb_url are derived from the storage key."""

    id: int
    kind: PhotoKindEnum
    position: Optional[int] = None
    url: str
    thumb_url: str
    mime_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    size_bytes: int


class PhotoListResponse(BaseModel):
    avatar: Optional[PhotoResponse] = None
    gallery: list[PhotoResponse]


class ReorderItem(BaseModel):
    id: int = Field(gt=0)
    position: int = Field(ge=1, le=MAX_GALLERY_POSITION)


class ReorderRequest(BaseModel):
    """Request body for PATCH /api/v1/me/photos/reorder.

    Ids and positions are checked against the caller's actual gallery by the
    slot engine; this model only bounds the shape of the request.
    """

    order: list[ReorderItem] = Field(min_length=1, max_length=MAX_PHOTOS)


class GalleryResponse(BaseModel):
    gallery: list[PhotoResponse]
