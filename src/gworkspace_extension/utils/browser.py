"""Open URLs in the user's default browser without shell interpretation.

URLs are validated before any process is spawned: only absolute http(s)
URLs without control characters are accepted. Every launcher receives the
URL as a single argument vector element. The Windows launcher is the one
place a command string is built, and it escapes the URL as a PowerShell
single-quoted literal.
"""

import asyncio
import logging
import os
import subprocess  # nosec B404
import sys
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

SAFE_SCHEMES = ("http", "https")
CONTROL_CHARS = ("\n", "\r", "\x00")
TEXT_BROWSERS = ("www-browser",)

# (command, args) -> exit code; raises OSError when the process cannot start
SpawnFunc = Callable[[str, list[str]], Awaitable[int]]


class UnsafeUrlError(ValueError):
    """Raised when a URL is malformed or could be used for injection."""


class UnsupportedPlatformError(OSError):
    """Raised when no browser launcher exists for the current platform."""


class BrowserLaunchError(OSError):
    """Raised when the browser process fails to start or exits non-zero."""


async def spawn_process(command: str, args: list[str]) -> int:
    """Start a process from an argument vector and wait for it to exit."""
    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return await process.wait()


def validate_url(url: str) -> None:
    """Reject URLs that are not safe to hand to a launcher.

    Raises:
        UnsafeUrlError: If the URL is not absolute, not http(s), or contains
            control characters.
    """
    if any(char in url for char in CONTROL_CHARS):
        raise UnsafeUrlError("URL contains invalid characters")

    try:
        parsed = urlsplit(url)
    except ValueError:
        raise UnsafeUrlError(f"Invalid URL: {url}") from None

    if not parsed.scheme:
        raise UnsafeUrlError(f"Invalid URL: {url}")
    if parsed.scheme.lower() not in SAFE_SCHEMES:
        raise UnsafeUrlError(
            f"Unsafe protocol: {parsed.scheme}:. Only HTTP and HTTPS are allowed."
        )
    if not parsed.netloc:
        raise UnsafeUrlError(f"Invalid URL: {url}")


def _powershell_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _macos_commands(url: str) -> list[tuple[str, list[str]]]:
    return [("open", [url])]


def _windows_commands(url: str) -> list[tuple[str, list[str]]]:
    return [
        (
            "powershell.exe",
            [
                "-NoProfile",
                "-NonInteractive",
                "-WindowStyle",
                "Hidden",
                "-Command",
                f"Start-Process {_powershell_literal(url)}",
            ],
        )
    ]


def _linux_commands(url: str) -> list[tuple[str, list[str]]]:
    return [("xdg-open", [url]), ("gnome-open", [url])]


LAUNCHERS: dict[str, Callable[[str], list[tuple[str, list[str]]]]] = {
    "darwin": _macos_commands,
    "win32": _windows_commands,
    "linux": _linux_commands,
}


async def open_browser_securely(
    url: str,
    spawn: SpawnFunc | None = None,
    platform: str | None = None,
) -> None:
    """Open a URL in the default browser.

    Launchers for a platform are tried in order until one exits cleanly.

    Args:
        url: Absolute http(s) URL to open.
        spawn: Process-spawning primitive. Defaults to :func:`spawn_process`.
        platform: Platform identifier. Defaults to ``sys.platform``.

    Raises:
        UnsafeUrlError: If the URL fails validation.
        UnsupportedPlatformError: If the platform has no launcher.
        BrowserLaunchError: If every launcher failed.
    """
    validate_url(url)

    platform = platform or sys.platform
    build_commands = LAUNCHERS.get(platform)
    if build_commands is None:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform}")

    spawn = spawn or spawn_process
    last_error = ""
    for command, args in build_commands(url):
        try:
            exit_code = await spawn(command, args)
        except OSError as e:
            last_error = f"{command}: {e}"
            logger.debug("Browser launcher %s failed to start: %s", command, e)
            continue

        if exit_code == 0:
            return
        last_error = f"{command} exited with code {exit_code}"
        logger.debug("Browser launcher %s exited with code %s", command, exit_code)

    raise BrowserLaunchError(f"Failed to open browser: {last_error}")


def should_launch_browser(platform: str | None = None) -> bool:
    """Check whether a graphical browser can be launched.

    Returns False in CI, non-interactive installs, with a text-mode
    BROWSER, on Linux without a display server, and over SSH elsewhere.
    """
    platform = platform or sys.platform

    if os.environ.get("BROWSER") in TEXT_BROWSERS:
        return False
    if os.environ.get("CI") or os.environ.get("DEBIAN_FRONTEND") == "noninteractive":
        return False

    if platform == "linux":
        return any(os.environ.get(var) for var in ("DISPLAY", "WAYLAND_DISPLAY", "MIR_SOCKET"))

    if os.environ.get("SSH_CONNECTION"):
        return False
    return True
