# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Rosalia Labs LLC

"""
Friendly peer names read from WireGuard configuration files.

A peer is named either by a metadata comment inside its section:

    [Peer]
    # friendly_name = alice-laptop
    PublicKey = ...

or by a plain comment directly above the section header:

    # alice-laptop
    [Peer]
    PublicKey = ...
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from wireguard_exporter.wireguard import ConfigSection, parse_sections

logger = logging.getLogger(__name__)

FRIENDLY_NAME_RE = re.compile(r"^friendly_name\s*=\s*(?P<name>.*)$", re.IGNORECASE)
DIRECTIVE_RE = re.compile(r"^\w+\s*=")


def _metadata_name(comments: list[str]) -> Optional[str]:
    for comment in comments:
        match = FRIENDLY_NAME_RE.match(comment)
        if match and match.group("name").strip():
            return match.group("name").strip()
    return None


def friendly_name(section: ConfigSection) -> Optional[str]:
    """
    Returns the friendly name of a [Peer] section, or None if it has none.

    A `friendly_name = ...` comment wins over a comment above the header.
    """
    name = _metadata_name(section.comments) or _metadata_name(
        section.leading_comments
    )
    if name:
        return name
    for comment in reversed(section.leading_comments):
        # commented-out directives are not names
        if comment and not DIRECTIVE_RE.match(comment):
            return comment
    return None


def load_name_mapping(text: str) -> dict[str, str]:
    """
    Builds a public key to friendly name mapping from configuration text.

    Sections that cannot be used are skipped; this never raises on
    malformed content.
    """
    mapping = {}
    for section in parse_sections(text):
        if section.name != "Peer":
            continue
        public_key = section.fields.get("PublicKey")
        if not public_key:
            logger.warning(
                f"Skipping [Peer] section at line {section.lineno}: no PublicKey"
            )
            continue
        name = friendly_name(section)
        if name is None:
            logger.debug(f"No friendly name for peer {public_key}")
            continue
        mapping[public_key] = name
    return mapping


def read_name_mapping(paths: Iterable[Path]) -> dict[str, str]:
    """
    Reads and merges the name mappings of several configuration files.

    Later files win when two files name the same key. Missing or unreadable
    files are skipped.

    Args:
        paths: Configuration files, in priority order (lowest first).

    Returns:
        Merged public key to friendly name mapping.
    """
    mapping = {}
    for path in paths:
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            logger.debug(f"Name configuration {path} not found, skipping")
            continue
        except OSError as e:
            logger.warning(f"Cannot read name configuration {path}: {e}")
            continue
        names = load_name_mapping(text)
        logger.debug(f"Loaded {len(names)} friendly names from {path}")
        mapping.update(names)
    return mapping
