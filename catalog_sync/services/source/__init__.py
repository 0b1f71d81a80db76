from .client import SourceClient, filter_properties
from .token_manager import SourceTokenManager

__all__ = ["SourceClient", "SourceTokenManager", "filter_properties"]
