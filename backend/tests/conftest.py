import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from engagement.domain.sessions.models import Session, SessionStatus
from engagement.settings import settings

INTERNAL_TOKEN = "test-internal-token"


@pytest_asyncio.fixture
async def fake_redis():
	client = FakeRedis(decode_responses=True)
	try:
		yield client
	finally:
		await client.flushall()
		await client.aclose()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the tokens the API guards compare against."""
	original_internal = settings.internal_token
	original_admin = settings.obs_admin_token
	original_public = settings.obs_metrics_public
	settings.internal_token = INTERNAL_TOKEN
	settings.obs_admin_token = "test-admin-token"
	settings.obs_metrics_public = False
	try:
		yield
	finally:
		settings.internal_token = original_internal
		settings.obs_admin_token = original_admin
		settings.obs_metrics_public = original_public


@pytest.fixture
def now() -> datetime:
	return datetime(2026, 3, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_session():
	def _make(
		session_id: int,
		*,
		start: datetime,
		end: datetime | None = None,
		status: SessionStatus = SessionStatus.RECRUITING,
		creator_id: int = 100,
		current_users: int = 2,
		max_users: int = 10,
		duration_minutes: int | None = None,
		session_type_id: int | None = 1,
		title: str = "Board game night",
	) -> Session:
		return Session(
			id=session_id,
			title=title,
			status=status,
			start_time=start,
			end_time=end or start + timedelta(hours=2),
			creator_id=creator_id,
			group_id=1,
			current_users=current_users,
			max_users=max_users,
			duration_minutes=duration_minutes,
			session_type_id=session_type_id,
			image_url="https://img.example/s.png",
		)

	return _make
