"""Pydantic schemas for connection requests and read models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from floc.domain.connections.models import Edge


class ConnectRequest(BaseModel):
	email: str = Field(..., min_length=3, max_length=320, description="Email of the user to connect with")


class ConnectionView(BaseModel):
	user_id: str
	email: Optional[str] = None
	username: Optional[str] = None
	connected_at: Optional[str] = None
	is_mutual: Optional[bool] = None
	is_current_user: bool = False
	syncing: bool = False

	@classmethod
	def from_edge(cls, edge: Edge) -> "ConnectionView":
		return cls(
			user_id=edge.peer_id,
			email=edge.email or None,
			username=edge.username,
			connected_at=edge.connected_at,
			is_mutual=edge.is_mutual,
			is_current_user=edge.is_self,
			syncing=not edge.consistent,
		)
