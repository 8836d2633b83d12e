"""Delivery of encrypted Web Push messages through pywebpush."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

import requests
from loguru import logger
from pywebpush import WebPushException, webpush

from market_notify.config import settings
from market_notify.utils.exceptions import PermanentDeliveryError, TransientDeliveryError

# Push services answer 404 or 410 once a subscription has expired or was revoked.
GONE_STATUS_CODES = frozenset({404, 410})


class PushTransport(Protocol):
    """Sends one serialized payload to one subscription."""

    async def send(self, subscription_info: Dict[str, Any], data: str) -> None:
        """Raise ``PermanentDeliveryError`` or ``TransientDeliveryError`` on failure."""
        ...


class WebPushTransport:
    """VAPID-signed delivery using pywebpush in a worker thread."""

    def __init__(
        self,
        *,
        vapid_private_key: Optional[str],
        vapid_subject: str,
        ttl: int = 0,
        timeout: Optional[float] = None,
    ) -> None:
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.ttl = ttl
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "WebPushTransport":
        return cls(
            vapid_private_key=settings.VAPID_PRIVATE_KEY,
            vapid_subject=settings.VAPID_SUBJECT,
            ttl=settings.PUSH_TTL_SECONDS,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.vapid_private_key)

    def _send_sync(self, subscription_info: Dict[str, Any], data: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=self.vapid_private_key,
            # pywebpush mutates the claims dict, so each call gets its own
            vapid_claims={"sub": self.vapid_subject},
            ttl=self.ttl,
            timeout=self.timeout,
        )

    async def send(self, subscription_info: Dict[str, Any], data: str) -> None:
        endpoint = subscription_info.get("endpoint", "")
        if not self.configured:
            raise TransientDeliveryError("VAPID keys not configured")

        try:
            await asyncio.to_thread(self._send_sync, subscription_info, data)
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            if status_code in GONE_STATUS_CODES:
                raise PermanentDeliveryError(
                    "Subscription expired or unsubscribed", status_code=status_code
                ) from exc
            logger.warning("WebPush failed", endpoint=endpoint, status_code=status_code, error=str(exc))
            raise TransientDeliveryError(str(exc), status_code=status_code) from exc
        except requests.RequestException as exc:
            logger.warning("WebPush request error", endpoint=endpoint, error=str(exc))
            raise TransientDeliveryError(str(exc)) from exc
