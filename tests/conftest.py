import pytest

from pathstate import keypath


@pytest.fixture(autouse=True)
def fresh_keypath_cache():
    """Start every test with an empty keypath memo."""
    keypath.reset_cache()
    yield
    keypath.reset_cache()
