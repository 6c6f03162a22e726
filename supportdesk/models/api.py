"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Responses serialise with camelCase keys, which is also the shape of the
realtime event payloads.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """User role enumeration."""

    CUSTOMER = "CUSTOMER"
    AGENT = "AGENT"


class TicketStatus(str, Enum):
    """Ticket status enumeration. OPEN is initial, CLOSED is terminal."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CamelModel(BaseModel):
    """Response base: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Auth Models
# ============================================================================


class SigninRequest(BaseModel):
    """POST /auth/signin request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)


class SignupRequest(SigninRequest):
    """POST /auth/signup request body."""

    confirm_password: str = Field(..., min_length=1, max_length=1024, alias="confirmPassword")
    first_name: str | None = Field(None, max_length=255, alias="firstName")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupRequest":
        """Password and confirmation must be identical."""
        if self.password != self.confirm_password:
            raise ValueError("Password and Confirm Password do not match")
        return self


class MagicLinkRequest(BaseModel):
    """POST /auth/magic-link request body."""

    email: str = Field(..., min_length=3, max_length=255)


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str


class SignupResponse(BaseModel):
    """POST /auth/signup response."""

    status: str = "success"
    message: str
    email: str


class TokenResponse(BaseModel):
    """Token pair returned by /auth/refresh."""

    access_token: str
    refresh_token: str


class UserResponse(CamelModel):
    """GET /users/me response."""

    id: UUID
    email: str
    name: str | None = None
    display_name: str | None = None
    profile_image: str | None = None
    role: Role
    is_google_account: bool = False


# ============================================================================
# Ticket Models
# ============================================================================


class CreateTicketRequest(BaseModel):
    """POST /tickets request body."""

    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)


class CreateReplyRequest(BaseModel):
    """POST /tickets/{id}/replies request body."""

    content: str = Field(..., min_length=1)


class UpdateTicketStatusRequest(BaseModel):
    """PATCH /tickets/{id}/status request body."""

    status: TicketStatus


class AuthorSummary(CamelModel):
    """Reply author as rendered to clients."""

    id: UUID
    name: str | None = None
    email: str
    profile_image: str | None = None
    role: Role


class ReplyResponse(CamelModel):
    """A single reply; also the payload of the newReply event."""

    id: UUID
    content: str
    created_at: datetime
    author: AuthorSummary


class TicketResponse(CamelModel):
    """POST /tickets response."""

    id: UUID
    subject: str
    status: TicketStatus
    user_id: UUID
    user_name: str | None = None
    user_email: str
    created_at: datetime
    updated_at: datetime


class TicketSummary(CamelModel):
    """Row of GET /tickets."""

    id: UUID
    subject: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime
    user_email: str
    user_name: str | None = None


class TicketListResponse(CamelModel):
    """GET /tickets response."""

    tickets: list[TicketSummary]


class TicketDetail(CamelModel):
    """Ticket body of GET /tickets/{id}; first reply rendered as message."""

    id: UUID
    subject: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime
    message: str
    replies: list[ReplyResponse]


class TicketDetailResponse(CamelModel):
    """GET /tickets/{id} response: owning customer plus ticket."""

    id: UUID
    email: str
    first_name: str | None = None
    ticket: TicketDetail


class TicketStatusResponse(CamelModel):
    """PATCH /tickets/{id}/status response; also the statusChanged payload."""

    id: UUID
    status: TicketStatus
