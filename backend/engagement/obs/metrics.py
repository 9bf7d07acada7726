"""Central registry for Prometheus metrics used by the engagement engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

TICKS = Counter(
	"engagement_ticks_total",
	"Scheduler ticks executed",
	["result"],
)

TICK_DURATION = Histogram(
	"engagement_tick_duration_seconds",
	"Duration of a full scheduler tick",
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)

TICK_STEP_FAILURES = Counter(
	"engagement_tick_step_failures_total",
	"Tick steps that raised or timed out",
	["step"],
)

SESSION_TRANSITIONS = Counter(
	"engagement_session_transitions_total",
	"Session status transitions applied",
	["from_status", "to_status"],
)

REMINDERS_SENT = Counter(
	"engagement_reminders_sent_total",
	"Session reminders dispatched",
	["notification_type"],
)

REMINDERS_SKIPPED = Counter(
	"engagement_reminders_skipped_total",
	"Session reminders skipped",
	["reason"],
)

GATEWAY_REQUESTS = Counter(
	"engagement_gateway_requests_total",
	"Outbound message gateway calls",
	["channel", "result"],
)

STATS_PROCESSED = Counter(
	"engagement_stats_processed_total",
	"Statistics aggregation outcomes",
	["result"],
)

STATS_TRIGGERS = Counter(
	"engagement_stats_triggers_total",
	"Completed sessions handed to the statistics aggregator",
	["mode", "result"],
)

POPULAR_CACHE_READS = Counter(
	"engagement_popular_cache_reads_total",
	"Popularity cache reads",
	["outcome"],
)

POPULAR_REBUILDS = Counter(
	"engagement_popular_rebuilds_total",
	"Popularity cache rebuilds",
	["trigger", "result"],
)

POPULAR_NEW_ITEMS = Counter(
	"engagement_popular_new_items_total",
	"Sessions that newly entered the popular set",
)

OWNER_EMAILS = Counter(
	"engagement_owner_emails_total",
	"Popular-session owner emails",
	["result"],
)

BACKGROUND_TASKS = Counter(
	"engagement_background_tasks_total",
	"Background pool task outcomes",
	["name", "result"],
)

BACKGROUND_QUEUE_DEPTH = Gauge(
	"engagement_background_queue_depth",
	"Tasks waiting in the background pool",
)

BACKGROUND_RUNS = Counter(
	"engagement_jobs_runs_total",
	"Scheduled job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"engagement_jobs_duration_seconds",
	"Scheduled job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)

REDIS_UP = Gauge("engagement_redis_up", "Redis availability (1=up,0=down)")
POSTGRES_UP = Gauge("engagement_postgres_up", "Postgres availability (1=up,0=down)")


def inc_tick(result: str) -> None:
	TICKS.labels(result=result).inc()


def inc_tick_step_failure(step: str) -> None:
	TICK_STEP_FAILURES.labels(step=step).inc()


def inc_transition(from_status: str, to_status: str, count: int = 1) -> None:
	if count:
		SESSION_TRANSITIONS.labels(from_status=from_status, to_status=to_status).inc(count)


def inc_reminder_sent(notification_type: str) -> None:
	REMINDERS_SENT.labels(notification_type=notification_type).inc()


def inc_reminder_skipped(reason: str) -> None:
	REMINDERS_SKIPPED.labels(reason=reason).inc()


def inc_gateway(channel: str, result: str) -> None:
	GATEWAY_REQUESTS.labels(channel=channel, result=result).inc()


def inc_stats_processed(result: str) -> None:
	STATS_PROCESSED.labels(result=result).inc()


def inc_stats_trigger(mode: str, result: str) -> None:
	STATS_TRIGGERS.labels(mode=mode, result=result).inc()


def inc_popular_read(outcome: str) -> None:
	POPULAR_CACHE_READS.labels(outcome=outcome).inc()


def inc_popular_rebuild(trigger: str, result: str) -> None:
	POPULAR_REBUILDS.labels(trigger=trigger, result=result).inc()


def inc_owner_email(result: str) -> None:
	OWNER_EMAILS.labels(result=result).inc()


def inc_background_task(name: str, result: str) -> None:
	BACKGROUND_TASKS.labels(name=name, result=result).inc()


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
