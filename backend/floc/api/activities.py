"""REST API surface for activities and participation."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from floc.domain.activities.queries import ActivityQueries
from floc.domain.activities.schemas import (
	ActivityCreated,
	ActivityCreateRequest,
	ActivityPageView,
	ActivityUpdateRequest,
	ActivityView,
	JoinRequest,
	JoinResponse,
)
from floc.domain.activities.service import ActivityParticipationEngine
from floc.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["activities"])


def get_engine() -> ActivityParticipationEngine:
	return ActivityParticipationEngine()


def get_queries() -> ActivityQueries:
	return ActivityQueries()


@router.post("/activities", response_model=ActivityCreated, status_code=status.HTTP_201_CREATED)
async def create_activity(
	payload: ActivityCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: ActivityParticipationEngine = Depends(get_engine),
) -> ActivityCreated:
	activity_id = await engine.create(auth_user, payload)
	return ActivityCreated(id=activity_id)


@router.get("/activities/mine", response_model=List[ActivityView])
async def my_activities(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	queries: ActivityQueries = Depends(get_queries),
) -> List[ActivityView]:
	activities = await queries.list_my_activities(auth_user)
	return [ActivityView.from_activity(activity, auth_user.id) for activity in activities]


@router.get("/activities/feed", response_model=ActivityPageView)
async def connections_feed(
	limit: Optional[int] = Query(default=None, ge=1),
	cursor: Optional[str] = Query(default=None),
	include_joined: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	queries: ActivityQueries = Depends(get_queries),
) -> ActivityPageView:
	page = await queries.list_connections_activities(
		auth_user,
		limit=limit,
		cursor=cursor,
		include_joined=include_joined,
	)
	return ActivityPageView(
		items=[ActivityView.from_activity(item.activity, auth_user.id, allow_join=item.allow_join) for item in page.items],
		next_cursor=page.next_cursor,
	)


@router.get("/users/{user_id}/activities", response_model=List[ActivityView])
async def profile_activities(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	queries: ActivityQueries = Depends(get_queries),
) -> List[ActivityView]:
	activities = await queries.list_profile_activities(auth_user, user_id)
	return [ActivityView.from_activity(activity, auth_user.id) for activity in activities]


@router.get("/activities/{activity_id}", response_model=ActivityView)
async def get_activity(
	activity_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	queries: ActivityQueries = Depends(get_queries),
) -> ActivityView:
	activity = await queries.get_activity(auth_user, activity_id)
	return ActivityView.from_activity(activity, auth_user.id)


@router.patch("/activities/{activity_id}", response_model=ActivityView)
async def update_activity(
	activity_id: str,
	payload: ActivityUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: ActivityParticipationEngine = Depends(get_engine),
) -> ActivityView:
	activity = await engine.update(auth_user, activity_id, payload)
	return ActivityView.from_activity(activity, auth_user.id)


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
	activity_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: ActivityParticipationEngine = Depends(get_engine),
) -> Response:
	await engine.delete(auth_user, activity_id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/activities/{activity_id}/join", response_model=JoinResponse)
async def join_activity(
	activity_id: str,
	response: Response,
	payload: Optional[JoinRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: ActivityParticipationEngine = Depends(get_engine),
) -> JoinResponse:
	result = await engine.join(
		auth_user,
		activity_id,
		connect_to_owner=bool(payload and payload.connect_to_owner),
	)
	if result.payment_required is not None:
		response.status_code = status.HTTP_402_PAYMENT_REQUIRED
	return JoinResponse.from_result(result)


@router.post("/activities/{activity_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_activity(
	activity_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	engine: ActivityParticipationEngine = Depends(get_engine),
) -> Response:
	await engine.leave(auth_user, activity_id)
	return Response(status_code=status.HTTP_204_NO_CONTENT)
