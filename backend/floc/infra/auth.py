"""Actor context for engine calls and the FastAPI identity dependency.

Identity is established upstream by the auth provider; requests reach the
service with the verified user in `X-User-Id` / `X-User-Email` headers. Every
engine call receives the resulting actor explicitly instead of reading an
ambient current user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from floc.domain.exceptions import Unauthenticated
from floc.infra.documents import is_valid_key


@dataclass(slots=True, frozen=True)
class AuthenticatedUser:
	id: str
	email: str
	username: Optional[str] = None


def require_actor(actor: Optional[AuthenticatedUser]) -> AuthenticatedUser:
	"""Hard precondition for every mutating call."""
	if actor is None or not str(actor.id or "").strip():
		raise Unauthenticated()
	# Ids double as map keys inside documents.
	if not is_valid_key(actor.id):
		raise Unauthenticated("invalid_identity")
	return actor


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	email = (x_user_email or "").strip()
	if not user_id or not email:
		raise Unauthenticated("missing_identity")
	if not is_valid_key(user_id):
		raise Unauthenticated("invalid_identity")
	username = (x_user_name or "").strip() or None
	return AuthenticatedUser(id=user_id, email=email, username=username)
