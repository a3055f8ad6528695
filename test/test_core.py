# test_core.py

import pytest
from pydantic import ValidationError
from prometheus_client.parser import text_string_to_metric_families

from wireguard_exporter import core
from wireguard_exporter.core import load_settings, scrape
from wireguard_exporter.dump import ParseError
from wireguard_exporter.models import ExporterSettings
from wireguard_exporter.wireguard import ExternalCommandError, WireGuard

INTERFACE_LINE = "wg0\t(none)\tABCDpubkey\t51820\toff"
PEER_LINE = "wg0\tPEERpubkey\t(none)\t10.0.0.5:51820\t10.0.0.2/32\t1690000000\t1024\t2048\toff"
NOW = 1690000042.0


def _fake_dump(monkeypatch, text):
    monkeypatch.setattr(WireGuard, "show_all_dump", lambda self: text)


def _samples(body):
    return {
        (s.name, s.labels.get("interface"), s.labels.get("public_key")): s
        for family in text_string_to_metric_families(body.decode("utf-8"))
        for s in family.samples
    }


def test_load_settings_defaults():
    settings = load_settings({})

    assert settings == ExporterSettings()
    assert settings.wg_binary == "wg"
    assert settings.port == 9586
    assert settings.config_files == []


def test_load_settings_from_environment(tmp_path):
    env = {
        "WG_EXPORTER_WG_BINARY": "/usr/local/bin/wg",
        "WG_EXPORTER_PREPEND_SUDO": "yes",
        "WG_EXPORTER_TIMEOUT": "2.5",
        "WG_EXPORTER_CONFIG_FILES": f"{tmp_path}/wg0.conf, {tmp_path}/wg1.conf",
        "WG_EXPORTER_INTERFACES": "wg0,wg1",
        "WG_EXPORTER_SEPARATE_ALLOWED_IPS": "TRUE",
        "WG_EXPORTER_EXPORT_REMOTE_ENDPOINT": "0",
        "WG_EXPORTER_PORT": "9100",
        "WG_EXPORTER_LOG_LEVEL": "debug",
    }

    settings = load_settings(env)

    assert settings.wg_binary == "/usr/local/bin/wg"
    assert settings.prepend_sudo is True
    assert settings.timeout == 2.5
    assert [str(p) for p in settings.config_files] == [
        f"{tmp_path}/wg0.conf",
        f"{tmp_path}/wg1.conf",
    ]
    assert settings.interfaces == ["wg0", "wg1"]
    assert settings.separate_allowed_ips is True
    assert settings.export_remote_endpoint is False
    assert settings.port == 9100
    assert settings.log_level == "debug"


@pytest.mark.parametrize(
    "env",
    [
        {"WG_EXPORTER_PORT": "not-a-port"},
        {"WG_EXPORTER_PORT": "70000"},
        {"WG_EXPORTER_TIMEOUT": "0"},
    ],
)
def test_load_settings_rejects_invalid_values(env):
    with pytest.raises(ValidationError):
        load_settings(env)


def test_scrape_single_peer(monkeypatch):
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE}\n")

    samples = _samples(scrape(ExporterSettings(), now=NOW))

    assert samples[("wireguard_received_bytes_total", "wg0", "PEERpubkey")].value == 1024
    assert samples[("wireguard_sent_bytes_total", "wg0", "PEERpubkey")].value == 2048
    assert (
        samples[("wireguard_latest_handshake_delay_seconds", "wg0", "PEERpubkey")].value
        == 42
    )
    assert samples[("wireguard_interface_listen_port", "wg0", None)].value == 51820
    assert samples[("wireguard_interface_peers", "wg0", None)].value == 1


def test_scrape_never_handshaked(monkeypatch):
    _fake_dump(
        monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE.replace('1690000000', '0')}\n"
    )

    samples = _samples(scrape(ExporterSettings(), now=NOW))

    assert ("wireguard_latest_handshake_delay_seconds", "wg0", "PEERpubkey") not in samples
    assert ("wireguard_latest_handshake_seconds", "wg0", "PEERpubkey") not in samples
    assert samples[("wireguard_received_bytes_total", "wg0", "PEERpubkey")].value == 1024
    assert samples[("wireguard_sent_bytes_total", "wg0", "PEERpubkey")].value == 2048


def test_scrape_applies_friendly_names(monkeypatch, tmp_path):
    conf = tmp_path / "wg0.conf"
    conf.write_text("# alice\n[Peer]\nPublicKey = PEERpubkey\nAllowedIPs = 10.0.0.2/32\n")
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE}\n")

    settings = ExporterSettings(config_files=[conf, tmp_path / "absent.conf"])
    samples = _samples(scrape(settings, now=NOW))

    sample = samples[("wireguard_sent_bytes_total", "wg0", "PEERpubkey")]
    assert sample.labels["friendly_name"] == "alice"


def test_scrape_with_broken_name_config_still_exports(monkeypatch, tmp_path):
    conf = tmp_path / "wg0.conf"
    conf.write_text("[Peer]\nAllowedIPs = 10.0.0.2/32\n")
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE}\n")

    samples = _samples(scrape(ExporterSettings(config_files=[conf]), now=NOW))

    sample = samples[("wireguard_sent_bytes_total", "wg0", "PEERpubkey")]
    assert sample.labels["friendly_name"] == ""
    assert sample.value == 2048


def test_scrape_interface_filter(monkeypatch):
    other = PEER_LINE.replace("wg0", "wg1", 1)
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE}\n{other}\n")

    samples = _samples(scrape(ExporterSettings(interfaces=["wg1"]), now=NOW))

    assert {key[1] for key in samples} == {"wg1"}


def test_scrape_rereads_names_every_time(monkeypatch, tmp_path):
    conf = tmp_path / "wg0.conf"
    conf.write_text("# alice\n[Peer]\nPublicKey = PEERpubkey\n")
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE}\n")
    settings = ExporterSettings(config_files=[conf])
    key = ("wireguard_sent_bytes_total", "wg0", "PEERpubkey")

    assert _samples(scrape(settings, now=NOW))[key].labels["friendly_name"] == "alice"
    conf.write_text("# bob\n[Peer]\nPublicKey = PEERpubkey\n")
    assert _samples(scrape(settings, now=NOW))[key].labels["friendly_name"] == "bob"


def test_scrape_parse_error_propagates(monkeypatch):
    _fake_dump(monkeypatch, f"{INTERFACE_LINE}\n{PEER_LINE.replace('1024', 'x')}\n")

    with pytest.raises(ParseError, match="rx bytes"):
        scrape(ExporterSettings(), now=NOW)


def test_scrape_command_error_propagates(monkeypatch):
    def fail(self):
        raise ExternalCommandError("wg exploded")

    monkeypatch.setattr(WireGuard, "show_all_dump", fail)

    with pytest.raises(ExternalCommandError):
        scrape(ExporterSettings())


def test_scrape_passes_command_settings(monkeypatch):
    seen = {}

    def fake_dump(self):
        seen.update(
            binary=self.wg_binary, sudo=self.prepend_sudo, timeout=self.timeout
        )
        return ""

    monkeypatch.setattr(core.WireGuard, "show_all_dump", fake_dump)

    scrape(ExporterSettings(wg_binary="/opt/wg", prepend_sudo=True, timeout=4))

    assert seen == {"binary": "/opt/wg", "sudo": True, "timeout": 4}
