"""Service-to-service endpoint that folds a completed session into user statistics."""

from __future__ import annotations

import hmac
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from engagement.domain.statistics.service import ALREADY_PROCESSED, StatisticsAggregator
from engagement.infra.statistics_client import INTERNAL_TOKEN_HEADER
from engagement.settings import settings

router = APIRouter(prefix="/internal", tags=["internal"])


class UpdateStatisticsRequest(BaseModel):
	model_config = ConfigDict(strict=True, extra="ignore")

	session_id: int = Field(gt=0)


class UpdateStatisticsResponse(BaseModel):
	status: Literal["ok", "already_processed"]


async def require_internal_token(
	token: Optional[str] = Header(default=None, alias=INTERNAL_TOKEN_HEADER),
) -> None:
	expected = settings.internal_token
	if not expected or not token or not hmac.compare_digest(token, expected):
		raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


def get_aggregator(request: Request) -> StatisticsAggregator:
	aggregator = getattr(request.app.state, "aggregator", None)
	if aggregator is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="statistics_unavailable")
	return aggregator


@router.post("/update-statistics", response_model=UpdateStatisticsResponse)
async def update_statistics(
	payload: UpdateStatisticsRequest,
	_: None = Depends(require_internal_token),
	aggregator: StatisticsAggregator = Depends(get_aggregator),
) -> UpdateStatisticsResponse:
	outcome = await aggregator.process(payload.session_id)
	if outcome == ALREADY_PROCESSED:
		return UpdateStatisticsResponse(status="already_processed")
	return UpdateStatisticsResponse(status="ok")
