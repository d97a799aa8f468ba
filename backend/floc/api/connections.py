"""REST API surface for connection edges."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from floc.domain.connections.schemas import ConnectionView, ConnectRequest
from floc.domain.connections.service import ConnectionGraphManager
from floc.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["connections"])


def get_manager() -> ConnectionGraphManager:
	return ConnectionGraphManager()


@router.get("/connections", response_model=List[ConnectionView])
async def list_connections(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	manager: ConnectionGraphManager = Depends(get_manager),
) -> List[ConnectionView]:
	edges = await manager.list_edges(auth_user.id)
	return [ConnectionView.from_edge(edge) for edge in edges]


@router.post("/connections", response_model=ConnectionView, status_code=status.HTTP_201_CREATED)
async def connect(
	payload: ConnectRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	manager: ConnectionGraphManager = Depends(get_manager),
) -> ConnectionView:
	peer_id = await manager.connect(auth_user, payload.email)
	edges = await manager.list_edges(auth_user.id)
	edge = next(edge for edge in edges if edge.peer_id == peer_id)
	return ConnectionView.from_edge(edge)


@router.delete("/connections/{peer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect(
	peer_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	manager: ConnectionGraphManager = Depends(get_manager),
) -> Response:
	await manager.disconnect(auth_user, peer_id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/{user_id}/connections", response_model=List[ConnectionView])
async def list_user_connections(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	manager: ConnectionGraphManager = Depends(get_manager),
) -> List[ConnectionView]:
	edges = await manager.list_edges_with_mutual_status(user_id, auth_user.id)
	return [ConnectionView.from_edge(edge) for edge in edges]
