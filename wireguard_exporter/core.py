# core.py
import logging
import os
import time
from pathlib import Path
from typing import Mapping, Optional

from wireguard_exporter.dump import parse_dump
from wireguard_exporter.metrics import EncoderOptions, MetricModel, encode_metrics
from wireguard_exporter.models import ExporterSettings
from wireguard_exporter.names import read_name_mapping
from wireguard_exporter.wireguard import WireGuard

logger = logging.getLogger(__name__)

ENV_PREFIX = "WG_EXPORTER_"
TRUE_VALUES = {"1", "true", "yes", "on"}


# ------------------------------------------------------------
# Configuration
# ------------------------------------------------------------
def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ExporterSettings:
    """
    Reads exporter settings from WG_EXPORTER_* environment variables.

    Parameters:
        environ (Mapping): Environment to read; defaults to os.environ.

    Returns:
        ExporterSettings: Validated settings.

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    env = os.environ if environ is None else environ

    def get(name: str) -> Optional[str]:
        return env.get(ENV_PREFIX + name)

    values = {}
    for name in ("WG_BINARY", "TIMEOUT", "HOST", "PORT", "LOG_LEVEL"):
        if get(name):
            values[name.lower()] = get(name)
    for name in ("PREPEND_SUDO", "SEPARATE_ALLOWED_IPS", "EXPORT_REMOTE_ENDPOINT"):
        if get(name) is not None:
            values[name.lower()] = get(name).strip().lower() in TRUE_VALUES
    if get("CONFIG_FILES"):
        values["config_files"] = [Path(p) for p in _split_list(get("CONFIG_FILES"))]
    if get("INTERFACES"):
        values["interfaces"] = _split_list(get("INTERFACES"))

    return ExporterSettings(**values)


def configure_logging(settings: ExporterSettings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------
# Scrape
# ------------------------------------------------------------
def scrape(settings: ExporterSettings, now: Optional[float] = None) -> bytes:
    """
    Produces one Prometheus exposition document from the live WireGuard state.

    Every call runs `wg show all dump` and rereads the name configuration,
    so nothing is shared between scrapes.

    Parameters:
        settings (ExporterSettings): Exporter configuration.
        now (float): UNIX time to compute handshake delays against;
                     defaults to the current time.

    Returns:
        bytes: The exposition text.

    Raises:
        ExternalCommandError: If `wg` cannot be run or fails.
        ParseError: If the dump output is malformed.
    """
    wg = WireGuard(
        settings.wg_binary,
        prepend_sudo=settings.prepend_sudo,
        timeout=settings.timeout,
    )
    dump = wg.show_all_dump()
    if now is None:
        now = time.time()

    interfaces = parse_dump(dump)
    names = read_name_mapping(settings.config_files) if settings.config_files else {}
    model = MetricModel(interfaces, names, only=settings.interfaces)
    logger.debug(
        f"Scraped {len(interfaces)} interfaces, {len(names)} friendly names loaded"
    )

    options = EncoderOptions(
        separate_allowed_ips=settings.separate_allowed_ips,
        export_remote_endpoint=settings.export_remote_endpoint,
    )
    return encode_metrics(model, now, options)
