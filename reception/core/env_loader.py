"""Lecture du fichier ``.env`` du poste ou du serveur de réception."""
from __future__ import annotations

import os
import threading
from pathlib import Path

DEFAULT_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

_loaded = False
_lock = threading.Lock()


def parse_env_line(line: str) -> tuple[str, str] | None:
    """Décompose ``[export ]CLE=valeur``; ``None`` pour un commentaire ou une ligne invalide."""

    text = line.strip()
    if not text or text.startswith("#"):
        return None
    text = text.removeprefix("export ").lstrip()
    key, separator, value = text.partition("=")
    key = key.strip()
    if not separator or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]
    return key, value


def load_env(env_path: Path | None = None) -> None:
    """Complète ``os.environ`` une seule fois par processus.

    Le chemin peut aussi venir de ``RECEPTION_ENV_FILE``. Une variable déjà
    définie dans l'environnement l'emporte toujours sur le fichier.
    """

    global _loaded
    with _lock:
        if _loaded:
            return
        _loaded = True
        path = env_path or Path(os.getenv("RECEPTION_ENV_FILE", DEFAULT_ENV_FILE))
        if not path.is_file():
            return
        for line in path.read_text(encoding="utf-8").splitlines():
            entry = parse_env_line(line)
            if entry is not None:
                os.environ.setdefault(*entry)
