"""FastAPI routers for the engagement engine."""

from __future__ import annotations

from . import errors, internal, ops, popular

__all__ = ["errors", "internal", "ops", "popular"]
