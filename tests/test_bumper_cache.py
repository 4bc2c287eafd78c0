from __future__ import annotations

import os
import time

import pytest
import requests

from bulletin_studio.storage import bumper_cache as bumper_module
from bulletin_studio.storage.bumper_cache import BumperCache


class FakeStream:
    def __init__(self, status_code=200, chunks=(b"bump", b"er")):
        self.status_code = status_code
        self.chunks = chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def iter_content(self, chunk_size=None):
        return iter(self.chunks)


@pytest.fixture
def cache_path(config):
    config.storage.bumper_download_url = "https://cdn.example/bumper.mp4"
    return config.storage.bumper_cache_path


def test_fresh_cache_is_reused(config, cache_path, monkeypatch):
    os.makedirs(os.path.dirname(cache_path), exist_ok=True)
    with open(cache_path, 'wb') as f:
        f.write(b"cached")

    monkeypatch.setattr(bumper_module.requests, "get", lambda *a, **k: pytest.fail("should not download"))
    assert str(BumperCache(config).fetch()) == cache_path


def test_stale_cache_is_downloaded_again(config, cache_path, monkeypatch):
    os.makedirs(os.path.dirname(cache_path), exist_ok=True)
    with open(cache_path, 'wb') as f:
        f.write(b"old")
    old = time.time() - 25 * 3600
    os.utime(cache_path, (old, old))

    calls = []

    def fake_get(url, timeout=None, stream=False):
        calls.append((url, timeout, stream))
        return FakeStream()

    monkeypatch.setattr(bumper_module.requests, "get", fake_get)
    path = BumperCache(config).fetch()

    assert path.read_bytes() == b"bumper"
    assert calls == [("https://cdn.example/bumper.mp4", config.storage.download_timeout, True)]
    assert not list(path.parent.glob("*.part"))


def test_http_error_falls_back_to_local(config, cache_path, tmp_path, monkeypatch):
    local = tmp_path / "local_bumper.mp4"
    local.write_bytes(b"local")
    config.assets.local_bumper = str(local)

    monkeypatch.setattr(bumper_module.requests, "get", lambda *a, **k: FakeStream(status_code=404))
    assert BumperCache(config).fetch() == local


def test_network_error_without_fallback_returns_none(config, cache_path, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(bumper_module.requests, "get", boom)
    assert BumperCache(config).fetch() is None


def test_no_url_and_no_local_returns_none(config):
    assert BumperCache(config).fetch() is None


def test_empty_cache_file_is_not_fresh(config, cache_path):
    os.makedirs(os.path.dirname(cache_path), exist_ok=True)
    open(cache_path, 'wb').close()
    assert not BumperCache(config).is_fresh()


class WatchingStream(FakeStream):
    """Records the partial files present in the cache directory while streaming"""

    def __init__(self, directory, seen, fail=False):
        super().__init__()
        self.directory = directory
        self.seen = seen
        self.fail = fail

    def iter_content(self, chunk_size=None):
        yield b"bump"
        self.seen.append(sorted(p.name for p in self.directory.glob("*.part")))
        if self.fail:
            raise requests.ConnectionError("dropped")
        yield b"er"


def test_each_download_streams_into_its_own_file(config, cache_path, monkeypatch):
    cache = BumperCache(config)
    seen = []
    monkeypatch.setattr(bumper_module.requests, "get",
                        lambda *a, **k: WatchingStream(cache.cache_path.parent, seen))

    cache._download()
    cache._download()

    assert [len(names) for names in seen] == [1, 1]
    first, second = seen[0][0], seen[1][0]
    assert first != second
    assert first != cache.cache_path.name + ".part"
    assert first.startswith(cache.cache_path.name + ".")
    assert cache.cache_path.read_bytes() == b"bumper"
    assert not list(cache.cache_path.parent.glob("*.part"))


def test_interrupted_download_leaves_no_partial_file(config, cache_path, monkeypatch):
    cache = BumperCache(config)
    seen = []
    monkeypatch.setattr(bumper_module.requests, "get",
                        lambda *a, **k: WatchingStream(cache.cache_path.parent, seen, fail=True))

    assert cache._download() is None
    assert len(seen[0]) == 1
    assert not list(cache.cache_path.parent.glob("*.part"))
    assert not cache.cache_path.exists()
