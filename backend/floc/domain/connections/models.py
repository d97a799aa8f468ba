"""Domain models for connection edges."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

EDGE_INTENTS = "edge_intents"


def edge_payload(email: str, username: Optional[str], connected_at: str) -> Dict[str, Any]:
	"""Document shape of one directed edge inside `users/{id}.connections`."""
	return {"email": email, "username": username or None, "connectedAt": connected_at}


def pair_id(user_a: str, user_b: str) -> str:
	low, high = sorted((str(user_a), str(user_b)))
	return f"{low}_{high}"


@dataclass(slots=True)
class Edge:
	"""A single directed connection as seen from its owner."""

	peer_id: str
	email: str
	username: Optional[str]
	connected_at: Optional[str]
	consistent: bool = True
	is_mutual: Optional[bool] = None
	is_self: bool = False

	@property
	def display_name(self) -> str:
		return self.username or self.email or self.peer_id

	@classmethod
	def from_entry(cls, peer_id: str, entry: Dict[str, Any]) -> "Edge":
		entry = entry if isinstance(entry, dict) else {}
		return cls(
			peer_id=peer_id,
			email=entry.get("email") or "",
			username=entry.get("username"),
			connected_at=entry.get("connectedAt"),
		)
