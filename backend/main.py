"""
PM Engine — Preventive maintenance scheduling API

Uvicorn entry point: uvicorn main:app
"""

import logging

from core.app import create_app
from core.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [pm_engine] %(levelname)s %(name)s %(message)s",
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port)
