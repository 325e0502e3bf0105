"""SQLite schema definition for the local entity cache."""

from __future__ import annotations

SCHEMA_VERSION = 1

# No UNIQUE constraint on (entity_type, entity_id): duplicates are healed
# by reconciliation rather than rejected at insert time.
SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY);

CREATE TABLE IF NOT EXISTS cached_entities (
    local_key INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    farm_id TEXT,
    updated_at TEXT,
    deleted_at TEXT,
    fields TEXT NOT NULL DEFAULT '{}',
    links TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_cached_entities_id
    ON cached_entities(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_cached_entities_active
    ON cached_entities(entity_type, farm_id, deleted_at);

CREATE TABLE IF NOT EXISTS sync_cursors (
    table_name TEXT PRIMARY KEY,
    last_sync_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS push_queue (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    operation TEXT NOT NULL,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_attempt TEXT,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_push_queue_created ON push_queue(created_at);
"""
