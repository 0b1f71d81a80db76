import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import get_settings
from catalog_sync.integrations.base import DestinationClient
from catalog_sync.integrations.remote import RemoteDestinationClient
from catalog_sync.integrations.standin import StandInDestinationClient

logger = logging.getLogger(__name__)


def create_destination_client(
    db: AsyncSession,
    tenant_id: str,
    base_url: Optional[str] = None,
    credentials: Optional[Dict[str, str]] = None,
    use_standin: Optional[bool] = None,
) -> DestinationClient:
    """
    Remote Admin API client when the tenant has a destination URL and
    credentials, the persistence-backed stand-in otherwise (or when
    USE_STANDIN_DESTINATION is set).
    """
    if use_standin is None:
        use_standin = get_settings().USE_STANDIN_DESTINATION

    if use_standin or not base_url or not credentials:
        logger.info(f"Using stand-in destination for tenant {tenant_id}")
        return StandInDestinationClient(db, tenant_id)

    logger.info(f"Using remote destination {base_url} for tenant {tenant_id}")
    return RemoteDestinationClient.from_credentials(base_url, credentials)
