"""Push Notification Subscription model."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from market_notify.db.base import Base


class PushSubscription(Base):
    """Stores Web Push API subscription details for one device of a user."""

    __tablename__ = "push_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    endpoint = Column(Text, nullable=False, unique=True)
    p256dh_key = Column(String(255), nullable=False)
    auth_key = Column(String(255), nullable=False)

    user_agent = Column(String(512))
    # Expired endpoints are switched off, never deleted automatically
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", backref="push_subscriptions")

    @property
    def keys(self) -> dict[str, str]:
        return {"p256dh": self.p256dh_key, "auth": self.auth_key}

    def subscription_info(self) -> dict:
        """Return the structure expected by the push transport."""

        return {"endpoint": self.endpoint, "keys": self.keys}
