"""Classify a client runtime from its user agent and capability signals."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

UNKNOWN = "unknown"

_MOBILE_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.I)
_IOS_RE = re.compile(r"iPad|iPhone|iPod")
_ANDROID_RE = re.compile(r"Android", re.I)

# Checked in order; Chrome first because Chromium user agents also mention Safari.
_BROWSER_PATTERNS: tuple[tuple[str, str, re.Pattern[str]], ...] = (
    ("Chrome", "Chrome", re.compile(r"Chrome/(\d+)")),
    ("Safari", "Safari", re.compile(r"Version/(\d+)")),
    ("Firefox", "Firefox", re.compile(r"Firefox/(\d+)")),
    ("Edge", "Edge", re.compile(r"Edge/(\d+)")),
)


@dataclass(frozen=True)
class ClientSignals:
    """Raw runtime probes reported by a client."""

    user_agent: str = ""
    display_mode_standalone: bool = False
    navigator_standalone: bool = False
    referrer: str = ""
    has_service_worker: bool = False
    has_push_manager: bool = False
    has_event_source: bool = False
    has_notification_api: bool = False


@dataclass(frozen=True)
class DeviceCapabilities:
    """Capability record derived from :class:`ClientSignals`."""

    is_mobile: bool = False
    is_ios: bool = False
    is_android: bool = False
    is_standalone: bool = False
    can_use_web_push: bool = False
    can_use_sse: bool = False
    browser_name: str = UNKNOWN
    browser_version: str = UNKNOWN
    user_agent: str = UNKNOWN


class CapabilityProvider(Protocol):
    """Source of client signals, e.g. a request parser or a test fixture."""

    def signals(self) -> ClientSignals:
        ...


class StaticCapabilityProvider:
    """Provider returning a fixed set of signals."""

    def __init__(self, signals: ClientSignals | None = None) -> None:
        self._signals = signals or ClientSignals()

    def signals(self) -> ClientSignals:
        return self._signals


def is_mobile(user_agent: str) -> bool:
    return bool(_MOBILE_RE.search(user_agent or ""))


def is_ios(user_agent: str) -> bool:
    return bool(_IOS_RE.search(user_agent or ""))


def is_android(user_agent: str) -> bool:
    return bool(_ANDROID_RE.search(user_agent or ""))


def is_standalone(signals: ClientSignals) -> bool:
    """Return whether the app runs as an installed PWA rather than a browser tab."""

    return (
        signals.display_mode_standalone
        or signals.navigator_standalone
        or "android-app://" in (signals.referrer or "")
    )


def can_use_web_push(signals: ClientSignals) -> bool:
    """Web push needs service worker and push manager support.

    iOS only allows push from an app installed to the home screen, so iOS
    outside standalone mode never qualifies.
    """

    if not (signals.has_service_worker and signals.has_push_manager):
        return False
    if is_ios(signals.user_agent) and not is_standalone(signals):
        return False
    return True


def browser_info(user_agent: str) -> tuple[str, str]:
    """Return ``(name, major_version)`` for the user agent."""

    for marker, name, version_re in _BROWSER_PATTERNS:
        if marker in (user_agent or ""):
            match = version_re.search(user_agent)
            return name, match.group(1) if match else UNKNOWN
    return UNKNOWN, UNKNOWN


def detect_capabilities(signals: ClientSignals) -> DeviceCapabilities:
    """Build the capability record for ``signals``. Pure, never raises."""

    browser_name, browser_version = browser_info(signals.user_agent)
    return DeviceCapabilities(
        is_mobile=is_mobile(signals.user_agent),
        is_ios=is_ios(signals.user_agent),
        is_android=is_android(signals.user_agent),
        is_standalone=is_standalone(signals),
        can_use_web_push=can_use_web_push(signals),
        can_use_sse=signals.has_event_source,
        browser_name=browser_name,
        browser_version=browser_version,
        user_agent=signals.user_agent or UNKNOWN,
    )


def detect_from_provider(provider: CapabilityProvider) -> DeviceCapabilities:
    return detect_capabilities(provider.signals())
