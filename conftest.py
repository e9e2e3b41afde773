import pytest

from asset_collector import cache


@pytest.fixture(autouse=True)
def reset_shared_caches():
    cache._caches.clear()
    yield
    cache._caches.clear()


@pytest.fixture
def src(tmp_path):
    path = tmp_path / 'src'
    path.mkdir()
    return path
