# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Rosalia Labs LLC

"""
Parser for the output of `wg show all dump`.

Every line starts with the interface name. Interface lines carry five
tab-separated fields:

    name  private-key  public-key  listen-port  fwmark

and peer lines carry nine:

    name  public-key  preshared-key  endpoint  allowed-ips
    latest-handshake  rx-bytes  tx-bytes  persistent-keepalive

Lines are told apart by their field count only, so interface and peer lines
may arrive in any order.
"""

import logging
import re
from typing import NamedTuple, Optional, Union

from wireguard_exporter.models import Interface, Peer
from wireguard_exporter.wireguard import WireGuardError

logger = logging.getLogger(__name__)

NONE = "(none)"
OFF = "off"

DECIMAL_RE = re.compile(r"[0-9]+")
HEX_RE = re.compile(r"0[xX][0-9a-fA-F]+")

INTERFACE_FIELDS = 5
PEER_FIELDS = 9


class ParseError(WireGuardError):
    """Raised when dump output does not follow the expected grammar."""

    def __init__(self, lineno: int, line: str, reason: str):
        self.lineno = lineno
        self.line = line
        self.reason = reason
        super().__init__(f"line {lineno}: {reason}: {line!r}")


class PeerRecord(NamedTuple):
    interface: str
    peer: Peer


DumpRecord = Union[Interface, PeerRecord]


def _optional(value: str) -> Optional[str]:
    if value in (NONE, ""):
        return None
    return value


def _integer(
    value: str, field: str, lineno: int, line: str, allow_hex: bool = False
) -> int:
    if allow_hex and HEX_RE.fullmatch(value):
        return int(value, 16)
    if not DECIMAL_RE.fullmatch(value):
        raise ParseError(lineno, line, f"{field} is not an integer ({value!r})")
    return int(value, 10)


def _optional_integer(
    value: str, field: str, lineno: int, line: str, allow_hex: bool = False
) -> Optional[int]:
    if value in (OFF, NONE, ""):
        return None
    return _integer(value, field, lineno, line, allow_hex)


def _allowed_ips(value: str) -> list[str]:
    if value in (NONE, ""):
        return []
    return [cidr.strip() for cidr in value.split(",") if cidr.strip()]


def parse_line(line: str, lineno: int) -> DumpRecord:
    """
    Parses a single dump line into an interface or a peer record.

    Args:
        line: One line of dump output, without its line terminator.
        lineno: 1-based line number, used in error messages.

    Returns:
        An `Interface` (with no peers) for interface lines, or a
        `PeerRecord` naming the owning interface for peer lines.

    Raises:
        ParseError: On a wrong field count or a malformed numeric field.
    """
    fields = line.split("\t")

    if len(fields) == INTERFACE_FIELDS:
        name, private_key, public_key, listen_port, fwmark = fields
        return Interface(
            name=name,
            public_key=_optional(public_key),
            private_key_present=_optional(private_key) is not None,
            listen_port=_optional_integer(listen_port, "listen port", lineno, line),
            # wg prints the fwmark in hex
            fwmark=_optional_integer(fwmark, "fwmark", lineno, line, allow_hex=True),
        )

    if len(fields) == PEER_FIELDS:
        (
            name,
            public_key,
            preshared_key,
            endpoint,
            allowed_ips,
            latest_handshake,
            rx_bytes,
            tx_bytes,
            keepalive,
        ) = fields
        peer = Peer(
            public_key=public_key,
            preshared_key_present=_optional(preshared_key) is not None,
            endpoint=_optional(endpoint),
            allowed_ips=_allowed_ips(allowed_ips),
            latest_handshake=_integer(
                latest_handshake, "latest handshake", lineno, line
            ),
            transfer_rx=_integer(rx_bytes, "rx bytes", lineno, line),
            transfer_tx=_integer(tx_bytes, "tx bytes", lineno, line),
            persistent_keepalive=_optional_integer(
                keepalive, "persistent keepalive", lineno, line
            ),
        )
        return PeerRecord(name, peer)

    raise ParseError(
        lineno,
        line,
        f"expected {INTERFACE_FIELDS} or {PEER_FIELDS} fields, got {len(fields)}",
    )


def parse_records(text: str) -> list[tuple[int, str, DumpRecord]]:
    """
    First pass: turns dump text into `(lineno, line, record)` triples.

    Blank lines are skipped.
    """
    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        record = parse_line(line, lineno)
        logger.debug(f"line {lineno}: {record!r}")
        records.append((lineno, line, record))
    return records


def parse_dump(text: str) -> list[Interface]:
    """
    Parses `wg show all dump` output into interfaces with their peers.

    Peers attach to the interface named in their first field, wherever
    that interface's own line appears. A peer whose interface has no
    interface line gets an interface record without keys or port.

    Args:
        text: Raw dump output.

    Returns:
        Interfaces in order of first appearance, peers in line order.

    Raises:
        ParseError: If any line is malformed, an interface is listed twice,
                    or a public key repeats within one interface.
    """
    interfaces: dict[str, Interface] = {}
    declared: set[str] = set()
    seen_peers: dict[str, set[str]] = {}

    for lineno, line, record in parse_records(text):
        if isinstance(record, PeerRecord):
            iface = interfaces.get(record.interface)
            if iface is None:
                iface = Interface(name=record.interface)
                interfaces[record.interface] = iface
            keys = seen_peers.setdefault(iface.name, set())
            if record.peer.public_key in keys:
                raise ParseError(
                    lineno,
                    line,
                    f"duplicate peer {record.peer.public_key} on {iface.name}",
                )
            keys.add(record.peer.public_key)
            iface.peers.append(record.peer)
            continue

        if record.name in declared:
            raise ParseError(lineno, line, f"duplicate interface {record.name}")
        declared.add(record.name)
        existing = interfaces.get(record.name)
        if existing is not None:
            # peers listed before their interface line
            record.peers = existing.peers
        interfaces[record.name] = record

    return list(interfaces.values())
