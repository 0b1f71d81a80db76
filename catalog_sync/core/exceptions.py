from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class SyncError(BaseServiceError):
    """Raised when a sync run fails as a whole."""
    pass

class SourceServiceError(BaseServiceError):
    """Base exception for source ERP errors."""
    pass

class SourceAPIError(SourceServiceError):
    """Raised when source API calls fail."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_excerpt: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_excerpt = response_excerpt

class SourceAuthError(SourceAPIError):
    """Raised when the source API rejects our credentials."""
    pass

class SourceFetchError(SourceAPIError):
    """Raised when a source request still fails after all retries."""
    pass

class DestinationServiceError(BaseServiceError):
    """Base exception for destination platform errors."""
    pass

class DestinationAPIError(DestinationServiceError):
    """Raised when destination API calls fail."""
    pass

class CredentialDecryptionError(BaseServiceError):
    """Raised when stored tenant credentials cannot be decrypted."""
    pass

class MappingError(BaseServiceError):
    """Raised when an entity mapping cannot be written."""
    pass

class TransformationError(BaseServiceError):
    """Raised when a source record cannot be turned into a destination payload."""
    pass

class ConfigurationError(BaseServiceError):
    """Raised when tenant or application configuration is missing or invalid."""
    pass

class DatabaseError(Exception):
    """Exception raised for database-related errors."""
    pass
