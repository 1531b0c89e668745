"""Comptes autorisés à modifier les lots."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from reception.core import db, models, security
from reception.core.errors import ConflictError

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, path: Path, *, default_admin_password: str) -> None:
        self.path = path
        db.init_database(path, db.USERS_SCHEMA)
        self._seed_admin(default_admin_password)

    def _seed_admin(self, password: str) -> None:
        with db.write_transaction(self.path) as conn:
            row = conn.execute("SELECT 1 FROM users WHERE username = ?", ("admin",)).fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO users (username, password, role, is_active) VALUES (?, ?, 'admin', 1)",
                    ("admin", security.hash_password(password)),
                )
                logger.info("[AUTH] Compte administrateur par défaut créé")

    def create_user(self, username: str, password: str, role: str = "user") -> models.User:
        try:
            with db.write_transaction(self.path) as conn:
                cur = conn.execute(
                    "INSERT INTO users (username, password, role, is_active) VALUES (?, ?, ?, 1)",
                    (username, security.hash_password(password), role),
                )
                user_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"L'utilisateur {username} existe déjà") from exc
        return models.User(id=user_id, username=username, role=role, is_active=True)

    def get_user(self, username: str) -> Optional[models.User]:
        with db.get_connection(self.path) as conn:
            row = conn.execute(
                "SELECT id, username, role, is_active FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            return None
        return models.User(
            id=row["id"],
            username=row["username"],
            role=row["role"],
            is_active=bool(row["is_active"]),
        )

    def authenticate(self, username: str, password: str) -> Optional[models.User]:
        with db.get_connection(self.path) as conn:
            row = conn.execute(
                "SELECT password, is_active FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None or not row["is_active"]:
            return None
        if not security.verify_password(password, row["password"]):
            return None
        return self.get_user(username)
