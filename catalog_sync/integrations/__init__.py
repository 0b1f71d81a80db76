from .base import DestinationClient, DestinationResult, StockUpdate
from .factory import create_destination_client

__all__ = ["DestinationClient", "DestinationResult", "StockUpdate", "create_destination_client"]
