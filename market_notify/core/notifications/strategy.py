"""Pick the notification transport a client should use."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from .detection import DeviceCapabilities

IOS_INSTALL_GUIDANCE = (
    "To enable push notifications on iPhone, add this app to your home screen first. "
    'Tap the Share button, then "Add to Home Screen".'
)
ANDROID_UPDATE_GUIDANCE = (
    "Your browser does not support push notifications. "
    "Please update to the latest version of Chrome."
)


class NotificationStrategy(str, Enum):
    """Delivery transports, from richest to most basic."""

    WEB_PUSH = "web-push"
    SSE = "sse"
    POLLING = "polling"
    IN_APP = "in-app"


@dataclass(frozen=True)
class NotificationCapabilities:
    strategy: NotificationStrategy
    can_use_web_push: bool
    can_use_sse: bool
    can_use_polling: bool
    guidance: Optional[str]
    requires_setup: bool


def requires_setup(capabilities: DeviceCapabilities) -> bool:
    """iOS browsers must install the app before push becomes available."""

    return capabilities.is_ios and not capabilities.is_standalone


def get_notification_strategy(capabilities: DeviceCapabilities) -> NotificationStrategy:
    """Return the transport for ``capabilities``; first matching rule wins."""

    if requires_setup(capabilities):
        strategy = NotificationStrategy.IN_APP
    elif capabilities.can_use_web_push:
        strategy = NotificationStrategy.WEB_PUSH
    elif capabilities.can_use_sse:
        strategy = NotificationStrategy.SSE
    else:
        strategy = NotificationStrategy.POLLING
    logger.debug(
        "Notification strategy selected",
        strategy=strategy.value,
        browser=capabilities.browser_name,
        is_ios=capabilities.is_ios,
    )
    return strategy


def notification_guidance(capabilities: DeviceCapabilities) -> Optional[str]:
    """Explain to the user why push is unavailable, or ``None`` when it is not."""

    if requires_setup(capabilities):
        return IOS_INSTALL_GUIDANCE
    if capabilities.is_android and not capabilities.can_use_web_push:
        return ANDROID_UPDATE_GUIDANCE
    return None


def should_show_install_prompt(capabilities: DeviceCapabilities) -> bool:
    return requires_setup(capabilities)


def get_notification_capabilities(capabilities: DeviceCapabilities) -> NotificationCapabilities:
    """Evaluate strategy, guidance and setup flag in one pass."""

    return NotificationCapabilities(
        strategy=get_notification_strategy(capabilities),
        can_use_web_push=capabilities.can_use_web_push,
        can_use_sse=capabilities.can_use_sse,
        can_use_polling=True,
        guidance=notification_guidance(capabilities),
        requires_setup=requires_setup(capabilities),
    )
