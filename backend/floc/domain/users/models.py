"""User document model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

USERS = "users"


def default_username(email: Optional[str]) -> Optional[str]:
	"""Local part of an email address, used until the user picks a username."""
	if not email:
		return None
	local, sep, _ = email.partition("@")
	if not sep or not local:
		return None
	return local


@dataclass(slots=True)
class UserRecord:
	id: str
	email: str
	username: Optional[str] = None
	connections: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	created_at: Optional[str] = None
	last_login: Optional[str] = None

	@property
	def display_name(self) -> str:
		return self.username or self.email

	@classmethod
	def from_document(cls, user_id: str, doc: Dict[str, Any]) -> "UserRecord":
		connections = doc.get("connections") or {}
		return cls(
			id=user_id,
			email=doc.get("email") or "",
			username=doc.get("username"),
			connections=connections if isinstance(connections, dict) else {},
			created_at=doc.get("createdAt"),
			last_login=doc.get("lastLogin"),
		)
