"""Auth schemas."""

from typing import Optional

from pydantic import Field

from marketplace.schemas.base import BaseSchema


class UserProfileUpdate(BaseSchema):
    """Profile fields the user may set when syncing their account."""

    full_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class CurrentUserResponse(BaseSchema):
    """Current authenticated user info."""

    uid: str
    email: str | None = None
    email_verified: bool = False
    db_user_id: str | None = None
