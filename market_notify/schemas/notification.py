"""Schemas for the notification inbox, poll endpoints and strategy probe."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientSignalsIn(BaseModel):
    """Capability probes reported by the browser."""

    user_agent: Optional[str] = None
    display_mode_standalone: bool = False
    navigator_standalone: bool = False
    referrer: str = ""
    has_service_worker: bool = False
    has_push_manager: bool = False
    has_event_source: bool = False
    has_notification_api: bool = False


class DeviceCapabilitiesRead(BaseModel):
    is_mobile: bool
    is_ios: bool
    is_android: bool
    is_standalone: bool
    can_use_web_push: bool
    can_use_sse: bool
    browser_name: str
    browser_version: str
    user_agent: str


class StrategyResponse(BaseModel):
    strategy: str
    can_use_web_push: bool
    can_use_sse: bool
    can_use_polling: bool
    guidance: Optional[str] = None
    requires_setup: bool
    show_install_prompt: bool
    device: DeviceCapabilitiesRead


class NotificationRead(BaseModel):
    id: int
    type: str
    title: str
    body: str
    url: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CountResponse(BaseModel):
    count: int


class MarkReadRequest(BaseModel):
    ids: Optional[List[int]] = None
    type: Optional[str] = None


class MarkReadResponse(BaseModel):
    updated: int
