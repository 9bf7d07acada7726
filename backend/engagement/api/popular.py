"""Public read path for the popular-sessions cache."""

from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from engagement.domain.popularity.service import PopularityCacheManager

router = APIRouter(prefix="/sessions", tags=["sessions"])


class PopularSessionOut(BaseModel):
	id: int
	title: str
	start_time: datetime
	end_time: datetime
	duration: int
	session_type: str
	image_url: str
	genres: List[str]
	current_users: int
	max_users: int
	popularity_rate: float
	group_name: str


class PopularSessionsOut(BaseModel):
	items: List[PopularSessionOut]
	updated_at: datetime
	count: int


def get_popularity(request: Request) -> PopularityCacheManager:
	manager = getattr(request.app.state, "popularity", None)
	if manager is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="popularity_unavailable")
	return manager


@router.get("/popular", response_model=PopularSessionsOut)
async def popular_sessions(manager: PopularityCacheManager = Depends(get_popularity)) -> PopularSessionsOut:
	snapshot = await manager.get_popular()
	return PopularSessionsOut(
		items=[
			PopularSessionOut(
				id=item.id,
				title=item.title,
				start_time=item.start_time,
				end_time=item.end_time,
				duration=item.duration,
				session_type=item.session_type,
				image_url=item.image_url,
				genres=item.genres,
				current_users=item.current_users,
				max_users=item.max_users,
				popularity_rate=item.popularity_rate,
				group_name=item.group_name,
			)
			for item in snapshot.items
		],
		updated_at=snapshot.updated_at,
		count=snapshot.count,
	)
