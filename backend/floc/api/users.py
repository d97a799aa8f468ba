"""User document routes: sign-in sync and username changes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from floc.domain.users import service
from floc.domain.users.schemas import UsernameUpdateRequest, UserView
from floc.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me/sync", response_model=UserView)
async def sync_me(auth_user: AuthenticatedUser = Depends(get_current_user)) -> UserView:
	user = await service.ensure_user(auth_user)
	return UserView.from_record(user)


@router.patch("/me", response_model=UserView)
async def update_me(
	payload: UsernameUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> UserView:
	user = await service.update_username(auth_user, payload.username)
	return UserView.from_record(user)
