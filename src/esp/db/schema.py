"""Bootstrap DDL for the staging, canonical and run-log tables."""

from __future__ import annotations

from psycopg import Cursor


SCHEMA_SQL = """
create table if not exists staged_events (
    staged_id bigserial primary key,
    external_id text,
    name text not null default '',
    description text not null default '',
    start_date timestamptz not null,
    end_date timestamptz,
    country text not null default '',
    country_iso text,
    country_external_id text,
    latitude double precision,
    longitude double precision,
    sources text not null default '',
    status text not null default 'Pending'
        check (status in ('Pending', 'Approved', 'Rejected')),
    created_at timestamptz not null default now(),
    reviewed_at timestamptz,
    reviewer text,
    review_notes text,
    constraint staged_events_admissible check (
        country <> '' or country_external_id is not null
        or (latitude is not null and longitude is not null)
    )
);

create unique index if not exists staged_events_external_id_key
    on staged_events (lower(external_id)) where external_id is not null;

create index if not exists staged_events_status_created_idx
    on staged_events (status, created_at desc);

create table if not exists canonical_events (
    canonical_id bigserial primary key,
    external_id text,
    name text not null default '',
    description text not null default '',
    start_date timestamptz not null,
    end_date timestamptz,
    country text not null default '',
    country_iso text,
    country_external_id text,
    latitude double precision,
    longitude double precision,
    sources text not null default '',
    event_type text not null default '',
    constraint canonical_events_admissible check (
        country <> '' or country_external_id is not null
        or (latitude is not null and longitude is not null)
    )
);

create unique index if not exists canonical_events_external_id_key
    on canonical_events (lower(external_id)) where external_id is not null;

create table if not exists ingestion_runs (
    run_id bigserial primary key,
    source text not null,
    mode text not null,
    status text not null default 'running',
    started_at timestamptz not null default now(),
    finished_at timestamptz,
    page_count integer,
    fetched_count integer,
    staged_count integer,
    duplicate_count integer,
    rejected_count integer,
    cancelled boolean not null default false,
    error_json jsonb
);
"""


def apply_schema(cursor: Cursor) -> None:
    """Create tables and indexes if they do not exist."""
    cursor.execute(SCHEMA_SQL)
