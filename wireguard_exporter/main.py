# main.py
import logging

import uvicorn
from fastapi import FastAPI

from wireguard_exporter import __version__
from wireguard_exporter.api import router as api_router
from wireguard_exporter.core import configure_logging, load_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="WireGuard Exporter", version=__version__)
app.include_router(api_router)


def run() -> None:
    settings = load_settings()
    configure_logging(settings)
    logger.info(
        f"Starting WireGuard exporter {__version__} on {settings.host}:{settings.port}"
    )
    if settings.config_files:
        logger.info(
            f"Friendly names from: {', '.join(str(p) for p in settings.config_files)}"
        )
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
