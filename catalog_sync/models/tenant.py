# catalog_sync/models/tenant.py
import uuid

from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.sql import func

from catalog_sync.database import Base
from catalog_sync.core.enums import TenantStatus


class Tenant(Base):
    """
    A shop owner whose source ERP catalog is mirrored into a destination
    storefront. Credentials are stored encrypted (see core.encryption) and
    only decrypted by the worker when a job runs.
    """
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    name = Column(String, nullable=False)

    # --- Source ERP ---
    source_url = Column(String, nullable=False)
    source_credentials = Column(Text, nullable=False)        # encrypted {"username", "password"}

    # --- Destination storefront ---
    destination_url = Column(String, nullable=False)
    destination_credentials = Column(Text, nullable=False)   # encrypted {"clientId", "clientSecret"}

    status = Column(String(16), nullable=False, default=TenantStatus.ACTIVE.value)

    # e.g. {"staleThresholdHours": 6}
    config_sync_settings = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def stale_threshold_hours(self, default: float) -> float:
        settings = self.config_sync_settings or {}
        value = settings.get("staleThresholdHours")
        try:
            return float(value) if value is not None else default
        except (TypeError, ValueError):
            return default

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', status={self.status})>"
