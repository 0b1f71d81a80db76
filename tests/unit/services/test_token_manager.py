from datetime import timedelta

from catalog_sync.services.source.token_manager import SourceTokenManager


def test_token_valid_until_refresh_buffer():
    manager = SourceTokenManager()
    manager.save_access_token("abc", expires_in=3600)

    assert manager.get_access_token() == "abc"


def test_token_inside_refresh_buffer_is_reported_missing():
    """A token expiring within five minutes forces a new login"""
    manager = SourceTokenManager()
    manager.save_access_token("abc", expires_in=240)

    assert manager.get_access_token() is None


def test_custom_refresh_buffer():
    manager = SourceTokenManager(refresh_buffer=timedelta(seconds=10))
    manager.save_access_token("abc", expires_in=240)

    assert manager.get_access_token() == "abc"


def test_clear_tokens():
    manager = SourceTokenManager()
    manager.save_access_token("abc", expires_in=3600)
    manager.clear_tokens()

    assert manager.get_access_token() is None
    assert manager.expires_at is None
