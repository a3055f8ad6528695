# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Rosalia Labs LLC

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class Peer(BaseModel):
    public_key: str
    preshared_key_present: bool = False
    endpoint: Optional[str] = None
    allowed_ips: list[str] = Field(default_factory=list)
    latest_handshake: int = 0
    transfer_rx: int = 0
    transfer_tx: int = 0
    persistent_keepalive: Optional[int] = None
    friendly_name: Optional[str] = None

    @property
    def has_handshake(self) -> bool:
        return self.latest_handshake != 0

    def seconds_since_handshake(self, now: float) -> Optional[float]:
        """
        Seconds elapsed between the latest handshake and `now`.

        Returns None when the peer never completed a handshake. Clock skew
        between the kernel and this process never yields a negative value.
        """
        if not self.has_handshake:
            return None
        return max(0.0, now - self.latest_handshake)


class Interface(BaseModel):
    name: str
    public_key: Optional[str] = None
    private_key_present: bool = False
    listen_port: Optional[int] = None
    fwmark: Optional[int] = None
    peers: list[Peer] = Field(default_factory=list)


class ExporterSettings(BaseModel):
    wg_binary: str = "wg"
    prepend_sudo: bool = False
    timeout: float = Field(default=10.0, gt=0)
    config_files: list[Path] = Field(default_factory=list)
    interfaces: list[str] = Field(default_factory=list)
    separate_allowed_ips: bool = False
    export_remote_endpoint: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=9586, ge=1, le=65535)
    log_level: str = "INFO"
