#!/usr/bin/env python3
"""Prépare et lance le serveur FastAPI de réception en une seule commande."""
from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path
from subprocess import TimeoutExpired

ROOT_DIR = Path(__file__).resolve().parents[1]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Prépare et lance le serveur de réception en mode développement",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port sur lequel exposer l'API (défaut: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Adresse d'écoute d'uvicorn (défaut: 127.0.0.1)",
    )
    parser.add_argument(
        "--skip-tests",
        action="store_true",
        help="Ne pas exécuter pytest avant le lancement",
    )
    return parser.parse_args()


def run_step(description: str, command: list[str], cwd: Path) -> None:
    print(f"➡️  {description} : {' '.join(command)}")
    subprocess.run(command, cwd=str(cwd), check=True)


def main() -> int:
    args = parse_args()
    python_bin = sys.executable

    if not args.skip_tests:
        run_step("Exécution des tests", [python_bin, "-m", "pytest", "reception/tests"], ROOT_DIR)

    # En mode auto, l'application tente elle-même d'installer Chromium au démarrage.
    env = os.environ.copy()
    env.setdefault("PDF_RENDERER", "auto")

    command = [
        python_bin,
        "-m",
        "uvicorn",
        "reception.main:app",
        "--reload",
        "--host",
        args.host,
        "--port",
        str(args.port),
    ]
    print(f"➡️  Lancement du serveur de réception : {' '.join(command)}")

    process = subprocess.Popen(command, cwd=str(ROOT_DIR), env=env)
    try:
        return process.wait()
    except KeyboardInterrupt:
        print("\n⏹️  Arrêt du serveur...")
        process.terminate()
        try:
            return process.wait(timeout=10)
        except TimeoutExpired:
            process.kill()
            return process.wait()


if __name__ == "__main__":
    raise SystemExit(main())
