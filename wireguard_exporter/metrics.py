# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Rosalia Labs LLC

import logging
from typing import Iterable, Iterator, Optional

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from wireguard_exporter.models import Interface, Peer

logger = logging.getLogger(__name__)


class MetricModel:
    """
    Interfaces and peers of a single scrape, with friendly names applied.

    Peers are copied before annotation, so the parsed interfaces passed in
    are left untouched.

    Args:
        interfaces: Parsed interfaces, in dump order.
        names: Optional public key to friendly name mapping.
        only: Optional interface names to keep; everything else is dropped.
    """

    def __init__(
        self,
        interfaces: Iterable[Interface],
        names: Optional[dict[str, str]] = None,
        only: Optional[Iterable[str]] = None,
    ):
        names = names or {}
        wanted = set(only) if only else None
        self._interfaces: list[Interface] = []
        for iface in interfaces:
            if wanted is not None and iface.name not in wanted:
                logger.debug(f"Skipping interface {iface.name}: not selected")
                continue
            peers = [
                peer.model_copy(update={"friendly_name": names.get(peer.public_key)})
                for peer in iface.peers
            ]
            self._interfaces.append(iface.model_copy(update={"peers": peers}))

    def interfaces(self) -> Iterator[Interface]:
        return iter(self._interfaces)

    def peers(self) -> Iterator[tuple[Interface, Peer]]:
        for iface in self._interfaces:
            for peer in iface.peers:
                yield iface, peer


class EncoderOptions:
    """Switches for the optional peer labels."""

    def __init__(
        self, separate_allowed_ips: bool = False, export_remote_endpoint: bool = False
    ):
        self.separate_allowed_ips = separate_allowed_ips
        self.export_remote_endpoint = export_remote_endpoint


def split_endpoint(endpoint: Optional[str]) -> tuple[str, str]:
    """
    Splits `host:port` into its parts; IPv6 brackets are removed.

    >>> split_endpoint("[fd00::1]:51820")
    ('fd00::1', '51820')
    """
    if not endpoint:
        return "", ""
    host, sep, port = endpoint.rpartition(":")
    if not sep:
        return endpoint, ""
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


def peer_labels(iface: Interface, peer: Peer, options: EncoderOptions) -> dict[str, str]:
    labels = {
        "interface": iface.name,
        "public_key": peer.public_key,
        "friendly_name": peer.friendly_name or "",
        "allowed_ips": ",".join(peer.allowed_ips),
    }
    if options.separate_allowed_ips:
        for i, cidr in enumerate(peer.allowed_ips):
            ip, _, subnet = cidr.partition("/")
            labels[f"allowed_ip_{i}"] = ip
            labels[f"allowed_subnet_{i}"] = subnet
    if options.export_remote_endpoint:
        labels["remote_ip"], labels["remote_port"] = split_endpoint(peer.endpoint)
    return labels


class WireGuardCollector:
    """
    prometheus_client collector rendering one MetricModel.

    The collector is built for a single scrape and registered on a throwaway
    registry, so nothing survives between scrapes.
    """

    def __init__(
        self, model: MetricModel, now: float, options: Optional[EncoderOptions] = None
    ):
        self.model = model
        self.now = now
        self.options = options or EncoderOptions()

    def collect(self):
        sent = CounterMetricFamily(
            "wireguard_sent_bytes", "Bytes sent to the peer", labels=[]
        )
        received = CounterMetricFamily(
            "wireguard_received_bytes", "Bytes received from the peer", labels=[]
        )
        handshake = GaugeMetricFamily(
            "wireguard_latest_handshake_seconds",
            "UNIX timestamp of the latest handshake with the peer",
            labels=[],
        )
        handshake_delay = GaugeMetricFamily(
            "wireguard_latest_handshake_delay_seconds",
            "Seconds since the latest handshake with the peer",
            labels=[],
        )
        allowed_ips = GaugeMetricFamily(
            "wireguard_peer_allowed_ips",
            "Number of allowed IP ranges of the peer",
            labels=[],
        )

        for iface, peer in self.model.peers():
            labels = peer_labels(iface, peer, self.options)
            sent.add_sample(sent.name + "_total", labels, peer.transfer_tx)
            received.add_sample(received.name + "_total", labels, peer.transfer_rx)
            delay = peer.seconds_since_handshake(self.now)
            if delay is not None:
                handshake.add_sample(handshake.name, labels, peer.latest_handshake)
                handshake_delay.add_sample(handshake_delay.name, labels, delay)
            allowed_ips.add_sample(allowed_ips.name, labels, len(peer.allowed_ips))

        listen_port = GaugeMetricFamily(
            "wireguard_interface_listen_port",
            "UDP port the interface listens on",
            labels=["interface"],
        )
        peer_count = GaugeMetricFamily(
            "wireguard_interface_peers",
            "Number of peers configured on the interface",
            labels=["interface"],
        )
        for iface in self.model.interfaces():
            if iface.listen_port is not None:
                listen_port.add_metric([iface.name], iface.listen_port)
            peer_count.add_metric([iface.name], len(iface.peers))

        yield sent
        yield received
        yield handshake
        yield handshake_delay
        yield allowed_ips
        yield listen_port
        yield peer_count


def encode_metrics(
    model: MetricModel, now: float, options: Optional[EncoderOptions] = None
) -> bytes:
    """
    Renders a MetricModel in the Prometheus text exposition format.

    Args:
        model: Interfaces and peers to render.
        now: Current UNIX time, used for the handshake delay.
        options: Optional label switches.

    Returns:
        UTF-8 encoded exposition text. Identical input gives identical output.
    """
    registry = CollectorRegistry(auto_describe=False)
    registry.register(WireGuardCollector(model, now, options))
    return generate_latest(registry)
