"""User database model."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from market_notify.db.base import Base
from market_notify.db.types import StringList


ROLE_SUPER_ADMIN = "super-admin"
ROLE_TENANT = "tenant"
ROLE_CLIENT = "client"


class User(Base):
    """Represents a marketplace account (buyer, seller or administrator)."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255))

    # Sellers carry the tenant role; buyers carry client
    roles = Column(StringList, nullable=False, default=lambda: [ROLE_TENANT])

    # Metadata
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    is_active = Column(Boolean, default=True)

    def has_role(self, role: str) -> bool:
        """Return whether the account carries ``role``."""

        return role in (self.roles or [])

    @property
    def is_super_admin(self) -> bool:
        return self.has_role(ROLE_SUPER_ADMIN)
