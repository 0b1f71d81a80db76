"""
In-memory bearer token holder for the source ERP API.
Tokens are never persisted; a worker restart simply logs in again.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)


class SourceTokenManager:
    """
    Keeps the current access token and its expiry for one client instance.

    A token is reported as missing once we are inside the refresh buffer, so
    callers re-authenticate before the source starts rejecting it.
    """

    def __init__(self, refresh_buffer: timedelta = REFRESH_BUFFER):
        self.refresh_buffer = refresh_buffer
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def get_access_token(self) -> Optional[str]:
        """Get access token from memory if still valid"""
        if not self._access_token or not self._expires_at:
            return None
        if datetime.now(timezone.utc) < (self._expires_at - self.refresh_buffer):
            return self._access_token
        logger.debug("Access token expired or expiring soon")
        return None

    def save_access_token(self, access_token: str, expires_in: int):
        self._access_token = access_token
        self._expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.info(f"Saved source access token (expires: {self._expires_at})")

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    def clear_tokens(self):
        self._access_token = None
        self._expires_at = None
