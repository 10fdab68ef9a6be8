"""Platform probes that report which window currently has focus.

Each sampler declares whether it can run on this machine; ``select_sampler``
picks the first supported one once, at startup.
"""

from __future__ import annotations

import ctypes
import logging
import os
import re
import shutil
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional, Sequence

import psutil

from .errors import SamplerUnavailable
from .models import FocusSample

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = timedelta(milliseconds=200)


def _process_name(pid: Optional[int]) -> Optional[str]:
    if not pid:
        return None
    try:
        return psutil.Process(pid).name()
    except (psutil.Error, ProcessLookupError):
        return None


def _desktop_session() -> str:
    return os.environ.get("XDG_CURRENT_DESKTOP", "").upper()


class FocusSampler(ABC):
    """Reports the focused window's title and owning process."""

    name = "sampler"

    def __init__(self, timeout: timedelta = DEFAULT_PROBE_TIMEOUT) -> None:
        self.timeout = timeout

    @classmethod
    def is_supported(cls) -> bool:
        return False

    @abstractmethod
    def probe(self) -> Optional[FocusSample]:
        """Return the current focus, or ``None`` if nothing has focus."""

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout.total_seconds()

    def _run(self, *args: str, deadline: Optional[float] = None) -> str:
        """Run one helper command, bounded by the probe timeout or a shared deadline."""
        timeout = self.timeout.total_seconds()
        if deadline is not None:
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                raise SamplerUnavailable(f"{args[0]} skipped: probe deadline passed")
        try:
            completed = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as exc:
            raise SamplerUnavailable(f"{args[0]} timed out") from exc
        except (subprocess.CalledProcessError, OSError) as exc:
            raise SamplerUnavailable(f"{args[0]} failed: {exc}") from exc
        return completed.stdout.strip()


class WindowsForegroundSampler(FocusSampler):
    """Retrieves the foreground window title and process name via Win32."""

    name = "win32"

    def __init__(self, timeout: timedelta = DEFAULT_PROBE_TIMEOUT) -> None:
        super().__init__(timeout)
        from ctypes import wintypes

        self._wintypes = wintypes
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    @classmethod
    def is_supported(cls) -> bool:
        return sys.platform == "win32"

    def probe(self) -> Optional[FocusSample]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None

        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)

        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        return FocusSample(
            title=buffer.value.strip() or None,
            process_name=_process_name(pid.value),
            pid=pid.value or None,
        )


class AppleScriptSampler(FocusSampler):
    """Asks System Events for the frontmost application and its window."""

    name = "osascript"

    _APP_SCRIPT = (
        'tell application "System Events" to get '
        "{name, unix id} of first application process whose frontmost is true"
    )

    @classmethod
    def is_supported(cls) -> bool:
        return sys.platform == "darwin" and shutil.which("osascript") is not None

    def probe(self) -> Optional[FocusSample]:
        deadline = self._deadline()
        output = self._run("osascript", "-e", self._APP_SCRIPT, deadline=deadline)
        if not output:
            return None
        app_name, _, pid_text = output.rpartition(", ")
        app_name = app_name or output
        pid = int(pid_text) if pid_text.isdigit() else None

        try:
            title = self._run(
                "osascript",
                "-e",
                f'tell application "System Events" to tell process "{app_name}" '
                "to get name of front window",
                deadline=deadline,
            )
        except SamplerUnavailable:
            # Apps without windows (or without accessibility access) still count.
            title = ""
        return FocusSample(title=title or app_name, process_name=app_name, pid=pid)


class XdotoolSampler(FocusSampler):
    """X11 sampler built on ``xdotool``."""

    name = "xdotool"

    @classmethod
    def is_supported(cls) -> bool:
        return (
            sys.platform.startswith("linux")
            and bool(os.environ.get("DISPLAY"))
            and shutil.which("xdotool") is not None
        )

    def probe(self) -> Optional[FocusSample]:
        deadline = self._deadline()
        window_id = self._run("xdotool", "getactivewindow", deadline=deadline)
        if not window_id:
            return None
        title = self._run("xdotool", "getwindowname", window_id, deadline=deadline)
        try:
            pid_text = self._run("xdotool", "getwindowpid", window_id, deadline=deadline)
        except SamplerUnavailable:
            pid_text = ""
        pid = int(pid_text) if pid_text.isdigit() else None
        return FocusSample(title=title, process_name=_process_name(pid), pid=pid)


class GnomeShellSampler(FocusSampler):
    """GNOME (including Wayland sessions) via the Shell's Eval D-Bus method."""

    name = "gnome-shell"

    _TITLE_PATTERN = re.compile(r'"([^"]+)"')

    @classmethod
    def is_supported(cls) -> bool:
        return "GNOME" in _desktop_session() and shutil.which("gdbus") is not None

    def probe(self) -> Optional[FocusSample]:
        output = self._run(
            "gdbus",
            "call",
            "--session",
            "--dest",
            "org.gnome.Shell",
            "--object-path",
            "/org/gnome/Shell",
            "--method",
            "org.gnome.Shell.Eval",
            "global.display.focus_window.title",
        )
        match = self._TITLE_PATTERN.search(output)
        if not match:
            return None
        return FocusSample(title=match.group(1), process_name=None)


class KWinSampler(FocusSampler):
    """KDE Plasma via KWin's D-Bus interface."""

    name = "kwin"

    @classmethod
    def is_supported(cls) -> bool:
        return "KDE" in _desktop_session() and shutil.which("qdbus") is not None

    def probe(self) -> Optional[FocusSample]:
        output = self._run("qdbus", "org.kde.KWin", "/KWin", "org.kde.KWin.activeWindow")
        if not output:
            return None
        return FocusSample(title=output, process_name=None)


class UnavailableSampler(FocusSampler):
    """Used when no probe works here; every tick records ``Unknown``."""

    name = "unavailable"

    @classmethod
    def is_supported(cls) -> bool:
        return True

    def probe(self) -> Optional[FocusSample]:
        return None


DEFAULT_SAMPLERS: tuple[type[FocusSampler], ...] = (
    WindowsForegroundSampler,
    AppleScriptSampler,
    XdotoolSampler,
    GnomeShellSampler,
    KWinSampler,
)


def select_sampler(
    candidates: Sequence[type[FocusSampler]] = DEFAULT_SAMPLERS,
    timeout: timedelta = DEFAULT_PROBE_TIMEOUT,
) -> FocusSampler:
    """Return the highest-ranked sampler this machine supports."""
    for candidate in candidates:
        try:
            supported = candidate.is_supported()
        except Exception:  # pragma: no cover
            logger.exception("Capability check for %s failed", candidate.__name__)
            continue
        if not supported:
            continue
        try:
            sampler = candidate(timeout)
        except Exception:
            logger.exception("Failed to initialize %s sampler", candidate.name)
            continue
        logger.info("Using %s focus sampler", sampler.name)
        return sampler

    logger.warning("No focus sampler available; activity will be recorded as Unknown")
    return UnavailableSampler(timeout)
