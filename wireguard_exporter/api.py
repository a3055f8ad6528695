# api.py
import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from wireguard_exporter import core
from wireguard_exporter.dump import ParseError
from wireguard_exporter.models import ExporterSettings
from wireguard_exporter.wireguard import ExternalCommandError

logger = logging.getLogger(__name__)
router = APIRouter()


def get_settings() -> ExporterSettings:
    return core.load_settings()


@router.get("/", response_class=HTMLResponse)
def index():
    return """
    <html>
    <head><title>WireGuard Exporter</title></head>
    <body>
        <h2>WireGuard Exporter</h2>
        <p><a href="/metrics">Metrics</a></p>
    </body>
    </html>
    """


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/metrics")
def metrics(settings: ExporterSettings = Depends(get_settings)):
    """
    Scrapes WireGuard and returns the metrics in the text exposition format.

    A failed scrape returns no metrics: 503 when `wg` could not be run,
    500 when its output could not be parsed.
    """
    try:
        body = core.scrape(settings)
    except ExternalCommandError as e:
        logger.error(f"Scrape failed, wg command error: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": str(e)},
        )
    except ParseError as e:
        logger.error(f"Scrape failed, cannot parse wg output: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e)},
        )
    return Response(content=body, media_type=CONTENT_TYPE_LATEST)
