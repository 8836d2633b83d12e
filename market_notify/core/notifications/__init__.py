"""Transport selection and client-side delivery for marketplace notifications."""

from .detection import (
    CapabilityProvider,
    ClientSignals,
    DeviceCapabilities,
    StaticCapabilityProvider,
    browser_info,
    detect_capabilities,
    detect_from_provider,
)
from .strategy import (
    ANDROID_UPDATE_GUIDANCE,
    IOS_INSTALL_GUIDANCE,
    NotificationCapabilities,
    NotificationStrategy,
    get_notification_capabilities,
    get_notification_strategy,
    notification_guidance,
    should_show_install_prompt,
)
from .watchers import (
    CHAT,
    FEATURES,
    ORDERS,
    PAYMENTS,
    CountWatcher,
    FeatureConfig,
    FeatureWatcher,
    HttpCountFetcher,
    NotificationClient,
    NotificationRequest,
    WatcherState,
    feature_enabled,
)

__all__ = [
    "ANDROID_UPDATE_GUIDANCE",
    "IOS_INSTALL_GUIDANCE",
    "CHAT",
    "FEATURES",
    "ORDERS",
    "PAYMENTS",
    "CapabilityProvider",
    "ClientSignals",
    "CountWatcher",
    "DeviceCapabilities",
    "FeatureConfig",
    "FeatureWatcher",
    "HttpCountFetcher",
    "NotificationCapabilities",
    "NotificationClient",
    "NotificationRequest",
    "NotificationStrategy",
    "StaticCapabilityProvider",
    "WatcherState",
    "browser_info",
    "detect_capabilities",
    "detect_from_provider",
    "feature_enabled",
    "get_notification_capabilities",
    "get_notification_strategy",
    "notification_guidance",
    "should_show_install_prompt",
]
