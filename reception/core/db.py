"""Gestion basique des connexions SQLite."""
from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import ContextManager

logger = logging.getLogger(__name__)

_db_lock = RLock()

LOTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS marques (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL COLLATE NOCASE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS modeles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    marque_id INTEGER NOT NULL REFERENCES marques(id) ON DELETE CASCADE,
    name TEXT NOT NULL COLLATE NOCASE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(marque_id, name)
);
CREATE INDEX IF NOT EXISTS idx_modeles_marque_id ON modeles(marque_id);
CREATE TABLE IF NOT EXISTS lots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TIMESTAMP NOT NULL,
    finished_at TIMESTAMP DEFAULT NULL,
    recovered_at TIMESTAMP DEFAULT NULL,
    pdf_path TEXT DEFAULT NULL,
    lot_name TEXT DEFAULT NULL,
    lot_details TEXT DEFAULT NULL
);
CREATE TABLE IF NOT EXISTS lot_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    lot_id INTEGER NOT NULL REFERENCES lots(id) ON DELETE CASCADE,
    serial_number TEXT NOT NULL,
    type TEXT NOT NULL,
    marque_id INTEGER REFERENCES marques(id) ON DELETE SET NULL,
    modele_id INTEGER REFERENCES modeles(id) ON DELETE SET NULL,
    entry_type TEXT NOT NULL DEFAULT 'manual',
    date TEXT,
    time TEXT,
    state TEXT DEFAULT NULL,
    technician TEXT DEFAULT NULL,
    state_changed_at TIMESTAMP DEFAULT NULL,
    created_at TIMESTAMP NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_lot_items_lot_id ON lot_items(lot_id);
"""

USERS_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    password TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'user',
    is_active INTEGER NOT NULL DEFAULT 1
);
"""


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def _managed_connection(path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection that is always closed on exit."""

    conn = _connect(path)
    try:
        yield conn
        conn.commit()
    except Exception:
        if conn.in_transaction:
            conn.rollback()
        raise
    finally:
        conn.close()


def get_connection(path: Path) -> ContextManager[sqlite3.Connection]:
    return _managed_connection(path)


@contextmanager
def write_transaction(path: Path) -> Iterator[sqlite3.Connection]:
    """Serialise writers and open an immediate transaction."""

    with _db_lock:
        with _managed_connection(path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn


def init_database(path: Path, schema: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with _db_lock:
        with _managed_connection(path) as conn:
            conn.executescript(schema)
    logger.info("[DB] pid=%s path=%s", os.getpid(), path.resolve())
