"""Client-side polling watchers that turn count increases into local alerts.

Each feature (payments, orders, chat) polls its own count endpoint on a fixed
interval. The first observed count is only recorded, so a backlog that
existed before the watcher started never produces an alert. Later ticks emit
a single alert when the count grows and silently follow it when it shrinks.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Protocol

import httpx
from loguru import logger

from market_notify.utils.exceptions import PollError

CountFetcher = Callable[[], Awaitable[int]]


class WatcherState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    NOTIFIED = "notified"


@dataclass(frozen=True)
class FeatureConfig:
    """Static description of one watched feature."""

    name: str
    notification_type: str
    interval_seconds: float
    title: str
    single_body: str
    plural_body: str
    url: str
    sound: Optional[str] = "notification"
    required_roles: FrozenSet[str] = field(default_factory=frozenset)

    def body_for(self, new_items: int) -> str:
        if new_items == 1:
            return self.single_body
        return self.plural_body.format(count=new_items)


PAYMENTS = FeatureConfig(
    name="payments",
    notification_type="payment",
    interval_seconds=30.0,
    title="Payment Received",
    single_body="New payment received",
    plural_body="{count} new payments received",
    url="/verify-payments",
    required_roles=frozenset({"tenant"}),
)
ORDERS = FeatureConfig(
    name="orders",
    notification_type="order",
    interval_seconds=30.0,
    title="Order Update",
    single_body="One of your orders was updated",
    plural_body="{count} of your orders were updated",
    url="/orders",
)
CHAT = FeatureConfig(
    name="chat",
    notification_type="message",
    interval_seconds=10.0,
    title="New Message",
    single_body="You have a new message",
    plural_body="You have {count} new messages",
    url="/chat",
    sound="message",
)

FEATURES: Dict[str, FeatureConfig] = {f.name: f for f in (PAYMENTS, ORDERS, CHAT)}


@dataclass(frozen=True)
class NotificationRequest:
    """A local alert the watcher wants displayed."""

    title: str
    body: str
    tag: str
    url: str
    new_items: int
    sound: Optional[str] = None


class NotificationDisplay(Protocol):
    """Runtime facade that shows a user-visible alert."""

    def is_enabled(self) -> bool:
        """Whether the user granted permission to show alerts."""
        ...

    async def show(self, title: str, body: str, tag: str) -> None:
        ...


class SoundPlayer(Protocol):
    def play(self, name: str) -> None:
        ...


def feature_enabled(feature: FeatureConfig, *, logged_in: bool, roles: Iterable[str] = ()) -> bool:
    """Return whether ``feature`` applies to the current session."""

    if not logged_in:
        return False
    if feature.required_roles and not feature.required_roles.intersection(roles):
        return False
    return True


class CountWatcher:
    """Pure state machine comparing successive counts for one feature."""

    def __init__(self, feature: FeatureConfig, clock: Callable[[], float] = time.time) -> None:
        self.feature = feature
        self._clock = clock
        self.state = WatcherState.IDLE
        self.last_seen: Optional[int] = None

    def reset(self) -> None:
        self.state = WatcherState.IDLE
        self.last_seen = None

    def observe(self, count: int) -> Optional[NotificationRequest]:
        """Record ``count`` and return an alert when it grew since the last tick."""

        if self.last_seen is None:
            self.last_seen = count
            self.state = WatcherState.WATCHING
            return None

        previous = self.last_seen
        self.last_seen = count
        if count <= previous:
            self.state = WatcherState.WATCHING
            return None

        new_items = count - previous
        self.state = WatcherState.NOTIFIED
        return NotificationRequest(
            title=self.feature.title,
            body=self.feature.body_for(new_items),
            tag=f"{self.feature.name}-{int(self._clock() * 1000)}",
            url=self.feature.url,
            new_items=new_items,
            sound=self.feature.sound,
        )


class FeatureWatcher:
    """Poll a count source on an interval and display alerts for increases."""

    def __init__(
        self,
        feature: FeatureConfig,
        fetch_count: CountFetcher,
        display: NotificationDisplay,
        *,
        enabled: bool = True,
        play_sound: bool = True,
        sound_player: Optional[SoundPlayer] = None,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.feature = feature
        self.enabled = enabled
        self.play_sound = play_sound
        self.interval_seconds = interval_seconds or feature.interval_seconds
        self.watcher = CountWatcher(feature, clock=clock)
        self._fetch_count = fetch_count
        self._display = display
        self._sound_player = sound_player
        self._in_flight = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> WatcherState:
        return self.watcher.state

    async def tick(self) -> Optional[NotificationRequest]:
        """Run one poll; returns the alert that was shown, if any."""

        if not self.enabled:
            return None
        try:
            display_enabled = self._display.is_enabled()
        except Exception as exc:
            logger.warning("Could not check notification permission", feature=self.feature.name, error=str(exc))
            return None
        if not display_enabled or self._in_flight:
            return None

        self._in_flight = True
        try:
            count = await self._fetch_count()
        except Exception as exc:
            error = exc if isinstance(exc, PollError) else PollError(str(exc))
            logger.warning(
                "Notification poll failed",
                feature=self.feature.name,
                error=error.message,
            )
            return None
        finally:
            self._in_flight = False

        request = self.watcher.observe(count)
        if request is None:
            return None

        try:
            await self._display.show(request.title, request.body, request.tag)
        except Exception as exc:
            logger.warning("Failed to show notification", feature=self.feature.name, error=str(exc))
        if self.play_sound and request.sound and self._sound_player is not None:
            try:
                self._sound_player.play(request.sound)
            except Exception as exc:
                logger.debug("Could not play sound", sound=request.sound, error=str(exc))
        return request

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Begin polling in the background. A disabled watcher stays idle."""

        if not self.enabled or self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"watcher:{self.feature.name}")
        logger.debug("Watcher started", feature=self.feature.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the polling task and forget the last seen count."""

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.watcher.reset()
        logger.debug("Watcher stopped", feature=self.feature.name)


class HttpCountFetcher:
    """Fetch a feature's unread count from the poll endpoint."""

    def __init__(self, client: httpx.AsyncClient, notification_type: str, path: str = "/api/v1/notifications/count") -> None:
        self.client = client
        self.notification_type = notification_type
        self.path = path

    async def __call__(self) -> int:
        try:
            response = await self.client.get(self.path, params={"type": self.notification_type})
            response.raise_for_status()
            return int(response.json()["count"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            raise PollError(
                f"Could not fetch {self.notification_type} count: {exc}",
                {"type": self.notification_type},
            ) from exc


class NotificationClient:
    """Own the watchers of one logged-in session."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        display: NotificationDisplay,
        *,
        roles: Iterable[str] = (),
        features: Iterable[FeatureConfig] = tuple(FEATURES.values()),
        play_sound: bool = True,
        sound_player: Optional[SoundPlayer] = None,
    ) -> None:
        role_set = frozenset(roles)
        self.watchers: Dict[str, FeatureWatcher] = {
            feature.name: FeatureWatcher(
                feature,
                HttpCountFetcher(client, feature.notification_type),
                display,
                enabled=feature_enabled(feature, logged_in=True, roles=role_set),
                play_sound=play_sound,
                sound_player=sound_player,
            )
            for feature in features
        }

    def start(self) -> None:
        for watcher in self.watchers.values():
            watcher.start()

    async def close(self) -> None:
        """Stop every watcher, e.g. on logout."""

        await asyncio.gather(*(watcher.stop() for watcher in self.watchers.values()))
