"""Idempotent DDL for the tables the engagement engine owns.

`users`, `groups` and `device_users` belong to the account service and are
only read here; they are expected to exist already.
"""

from __future__ import annotations

import asyncpg

from engagement.domain.sessions import registry

_DDL = """
CREATE TABLE IF NOT EXISTS sessions (
	id BIGSERIAL PRIMARY KEY,
	title TEXT NOT NULL,
	session_type_id INTEGER,
	group_id BIGINT NOT NULL,
	creator_id BIGINT NOT NULL,
	status VARCHAR(20) NOT NULL DEFAULT 'recruiting'
		CHECK (status IN ('recruiting', 'in_progress', 'completed')),
	start_time TIMESTAMPTZ NOT NULL,
	end_time TIMESTAMPTZ NOT NULL,
	duration INTEGER,
	current_users INTEGER NOT NULL DEFAULT 0,
	max_users INTEGER NOT NULL,
	image_url TEXT NOT NULL DEFAULT '',
	created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
	updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
	CONSTRAINT sessions_capacity_chk CHECK (current_users <= max_users),
	CONSTRAINT sessions_time_chk CHECK (end_time >= start_time)
);
CREATE INDEX IF NOT EXISTS sessions_status_start_idx ON sessions (status, start_time);
CREATE INDEX IF NOT EXISTS sessions_status_end_idx ON sessions (status, end_time);

CREATE TABLE IF NOT EXISTS session_users (
	session_id BIGINT NOT NULL REFERENCES sessions (id) ON DELETE CASCADE,
	user_id BIGINT NOT NULL,
	joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
	PRIMARY KEY (session_id, user_id)
);
CREATE INDEX IF NOT EXISTS session_users_user_idx ON session_users (user_id);

CREATE TABLE IF NOT EXISTS notification_types (
	id SERIAL PRIMARY KEY,
	name VARCHAR(50) NOT NULL UNIQUE,
	description TEXT NOT NULL DEFAULT '',
	offset_minutes INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
	id BIGSERIAL PRIMARY KEY,
	user_id BIGINT NOT NULL,
	session_id BIGINT NOT NULL,
	notification_type_id INTEGER NOT NULL REFERENCES notification_types (id),
	send_at TIMESTAMPTZ NOT NULL,
	sent BOOLEAN NOT NULL DEFAULT FALSE,
	title TEXT NOT NULL,
	text TEXT NOT NULL,
	image_url TEXT NOT NULL DEFAULT '',
	created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS notifications_session_type_uq
	ON notifications (session_id, notification_type_id);

CREATE TABLE IF NOT EXISTS stats_processed_events (
	session_id BIGINT PRIMARY KEY,
	processed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS user_side_stats (
	user_id BIGINT PRIMARY KEY,
	count_created INTEGER NOT NULL DEFAULT 0,
	longest_streak INTEGER NOT NULL DEFAULT 0,
	favorite_weekday SMALLINT,
	biggest_session INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS user_session_stats (
	user_id BIGINT PRIMARY KEY,
	count_films INTEGER NOT NULL DEFAULT 0,
	count_games INTEGER NOT NULL DEFAULT 0,
	count_board_games INTEGER NOT NULL DEFAULT 0,
	count_other INTEGER NOT NULL DEFAULT 0,
	count_all INTEGER NOT NULL DEFAULT 0,
	spent_minutes BIGINT NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS user_top_category (
	user_id BIGINT PRIMARY KEY,
	session_type_id INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS genres (
	id SERIAL PRIMARY KEY,
	name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS user_genre_stats (
	user_id BIGINT NOT NULL,
	genre_id INTEGER NOT NULL REFERENCES genres (id),
	count INTEGER NOT NULL DEFAULT 0,
	PRIMARY KEY (user_id, genre_id)
);
"""


async def ensure_schema(pool: asyncpg.Pool) -> None:
	"""Create engine tables if absent and seed the reminder catalog."""
	async with pool.acquire() as conn:
		async with conn.transaction():
			await conn.execute(_DDL)
			await registry.seed_notification_types(conn)
