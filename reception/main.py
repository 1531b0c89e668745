"""Point d'entrée ASGI: ``uvicorn reception.main:app``."""
import os

import uvicorn

from reception.app import create_app

app = create_app()


def run() -> None:
    uvicorn.run(
        "reception.main:app",
        host=os.getenv("RECEPTION_HOST", "127.0.0.1"),
        port=int(os.getenv("RECEPTION_PORT", "8000")),
    )
