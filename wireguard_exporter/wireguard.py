# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Rosalia Labs LLC

import logging
import shutil
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)

PERMISSION_MARKERS = ("Permission denied", "Operation not permitted")


class WireGuardError(Exception):
    """Base class for WireGuard errors."""


class ExternalCommandError(WireGuardError):
    """Raised when the `wg` command cannot be run or exits with an error."""


class WireGuardPermissionError(ExternalCommandError):
    """Raised when a WireGuard operation requires root privileges."""


class WireGuard:
    """
    Thin wrapper around the `wg` command-line utility.

    Only the read-only `show` subcommands are exposed; the exporter never
    changes interface state.

    Args:
        wg_binary: Name or path of the `wg` binary. Defaults to 'wg'.
        prepend_sudo: If True, run the command through `sudo`.
        timeout: Seconds to wait for the command before giving up.
    """

    def __init__(
        self, wg_binary: str = "wg", prepend_sudo: bool = False, timeout: float = 10.0
    ):
        self.wg_binary = wg_binary
        self.prepend_sudo = prepend_sudo
        self.timeout = timeout

    def command(self, *args: str) -> list[str]:
        """
        Builds the argument vector for a `wg` invocation.

        Args:
            *args: Positional arguments to pass to the `wg` command.

        Returns:
            The full command line, including `sudo` when configured.
        """
        cmd = [self.wg_binary, *args]
        if self.prepend_sudo:
            cmd.insert(0, "sudo")
        return cmd

    def _run(self, *args: str) -> str:
        """
        Internal helper to run a `wg` command and capture its output.

        Args:
            *args: Positional arguments to pass to the `wg` command.

        Returns:
            Standard output from the command.

        Raises:
            WireGuardPermissionError: If permission is denied running the command.
            ExternalCommandError: If the binary is missing, times out or fails.
        """
        cmd = self.command(*args)
        if not shutil.which(cmd[0]):
            raise ExternalCommandError(f"Binary '{cmd[0]}' not found in PATH")

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalCommandError(
                f"Timed out after {self.timeout}s running: {' '.join(cmd)}"
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            if any(marker in stderr for marker in PERMISSION_MARKERS):
                raise WireGuardPermissionError(
                    f"Permission denied when running: {' '.join(cmd)}"
                ) from e
            raise ExternalCommandError(
                f"'{' '.join(cmd)}' exited with status {e.returncode}: {stderr}"
            ) from e
        except UnicodeDecodeError as e:
            raise ExternalCommandError(
                f"'{' '.join(cmd)}' produced output that is not UTF-8: {e}"
            ) from e
        except OSError as e:
            raise ExternalCommandError(f"Could not run {' '.join(cmd)}: {e}") from e
        return result.stdout

    def show_all_dump(self) -> str:
        """
        Returns the machine-readable state of every interface and peer.

        Returns:
            Raw tab-separated output of `wg show all dump`.
        """
        return self._run("show", "all", "dump")


class ConfigSection:
    """
    One [Section] block of a WireGuard configuration file.

    Attributes:
        name: Section name without brackets, e.g. "Interface" or "Peer".
        lines: Non-empty lines inside the section, comments included.
        leading_comments: Comment lines directly above the section header.
        lineno: Line number of the section header (1-based).
    """

    def __init__(
        self,
        name: str,
        lines: list[str],
        leading_comments: list[str],
        lineno: int,
    ):
        self.name = name
        self.lines = lines
        self.leading_comments = leading_comments
        self.lineno = lineno

    @property
    def fields(self) -> dict[str, str]:
        """
        Returns:
            `Key = Value` pairs of the section; comment lines are ignored.
        """
        fields = {}
        for line in self.lines:
            if _is_comment(line) or "=" not in line:
                continue
            key, value = map(str.strip, line.split("=", 1))
            fields[key] = value
        return fields

    @property
    def comments(self) -> list[str]:
        """
        Returns:
            Comment lines inside the section, with the comment marker removed.
        """
        return [_strip_comment(line) for line in self.lines if _is_comment(line)]

    def __repr__(self) -> str:
        return f"ConfigSection({self.name}, line {self.lineno})"


def _is_comment(line: str) -> bool:
    return line.startswith("#") or line.startswith(";")


def _strip_comment(line: str) -> str:
    return line[1:].strip()


def parse_sections(text: str) -> list[ConfigSection]:
    """
    Splits WireGuard configuration text into sections, in file order.

    Comments separated from the previous section by a blank line (or placed
    before the first section) are kept as `leading_comments` of the section
    that follows them. Comments still attached to a section body belong to
    that section only.
    """
    sections = []
    current: Optional[ConfigSection] = None
    pending_comments: list[str] = []
    detached = True

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            pending_comments = []
            detached = True
            continue
        if line.startswith("[") and line.endswith("]"):
            current = ConfigSection(line[1:-1].strip(), [], pending_comments, lineno)
            sections.append(current)
            pending_comments = []
            detached = False
            continue
        if not _is_comment(line):
            pending_comments = []
            detached = current is None
        elif detached:
            pending_comments.append(_strip_comment(line))
        if current is not None:
            current.lines.append(line)

    return sections
