"""Pydantic schemas for the user routes."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from floc.domain.users.models import UserRecord


class UsernameUpdateRequest(BaseModel):
	username: str = Field(..., min_length=1, max_length=64)


class UserView(BaseModel):
	id: str
	email: str
	username: Optional[str] = None
	display_name: str
	connection_count: int = 0
	created_at: Optional[str] = None
	last_login: Optional[str] = None

	@classmethod
	def from_record(cls, user: UserRecord) -> "UserView":
		return cls(
			id=user.id,
			email=user.email,
			username=user.username,
			display_name=user.display_name,
			connection_count=len(user.connections),
			created_at=user.created_at,
			last_login=user.last_login,
		)
