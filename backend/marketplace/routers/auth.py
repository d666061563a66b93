"""Auth router - links a verified Firebase identity to a marketplace account."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.database import get_db
from marketplace.core.security import AuthenticatedUser, get_current_user
from marketplace.models.user import User
from marketplace.schemas.auth import CurrentUserResponse, UserProfileUpdate

router = APIRouter(prefix="/auth", tags=["auth"])


def _to_response(current_user: AuthenticatedUser) -> CurrentUserResponse:
    return CurrentUserResponse(
        uid=current_user.uid,
        email=current_user.email,
        email_verified=current_user.email_verified,
        db_user_id=str(current_user.db_user_id) if current_user.db_user_id else None,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(current_user: AuthenticatedUser = Depends(get_current_user)):
    """Get current user info."""
    return _to_response(current_user)


@router.post("/register", response_model=CurrentUserResponse)
async def register(
    data: UserProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Create (or update) the account for the verified Firebase user."""
    if not current_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Firebase account has no email address",
        )

    result = await db.execute(select(User).where(User.firebase_uid == current_user.uid))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(firebase_uid=current_user.uid, email=current_user.email)
        db.add(user)
    if data.full_name is not None:
        user.full_name = data.full_name
    if data.phone is not None:
        user.phone = data.phone

    await db.commit()
    await db.refresh(user)

    current_user.db_user_id = user.id
    return _to_response(current_user)
