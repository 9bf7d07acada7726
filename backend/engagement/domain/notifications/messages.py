"""Reminder copy: the body line and a rotating pool of headlines."""

from __future__ import annotations

import random
from typing import Optional

from engagement.domain.sessions.models import NotificationType, Session

REMINDER_TITLES: tuple[str, ...] = (
	"The clock is ticking, your session is near",
	"Something good is about to start...",
	"Don't be late! Your session is close",
	"Your adventure starts soon!",
	"Get ready! The session is almost here",
	"Time to pack up, the session is coming",
	"Heads up: your session is about to begin",
	"Don't miss it! Starting very soon",
	"Your session is on the horizon",
	"Your session is knocking on the door!",
	"Almost there...",
	"Your session won't keep you waiting!",
	"Something special is about to begin!",
	"Be ready! Your session is close",
	"Your session is waiting for you!",
	"Everything starts soon!",
)


def reminder_text(session: Session, notification_type: NotificationType) -> str:
	label = notification_type.label or notification_type.name
	return f'Reminder: "{session.title}" starts in {label}'


def random_title(rng: Optional[random.Random] = None) -> str:
	return (rng or random).choice(REMINDER_TITLES)
