"""Current account endpoint used by clients to decide which watchers apply."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from market_notify.api import deps
from market_notify.db.models.user import User
from market_notify.schemas import UserRead

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
def read_current_user(current_user: User = Depends(deps.get_current_user)) -> User:
    return current_user
