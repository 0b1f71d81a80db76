from tests.mocks.mock_destination import MockDestination
from tests.mocks.mock_source import make_source

__all__ = ["MockDestination", "make_source"]
