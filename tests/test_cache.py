# tests/test_cache.py
import asyncio
import json

import pytest

from pokequiz.cache import DatasetCache, FileBlobStore, is_complete, load_or_build, rebuild_dataset
from pokequiz.dataset import holder
from pokequiz.errors import IncompleteCacheError
from pokequiz.settings import settings


@pytest.fixture
def cache(tmp_path):
    return DatasetCache(FileBlobStore(str(tmp_path / "pokemon.json")))


@pytest.fixture
def small_builds(monkeypatch):
    """Keep rebuilds within the fake provider's id range."""
    monkeypatch.setattr(settings, "max_species_id", 4)
    monkeypatch.setattr(settings, "type_count", 2)
    monkeypatch.setattr(settings, "fetch_concurrency", 3)


def _run(coro_fn, fake_api, cache):
    async def run():
        client = fake_api.client()
        try:
            return await coro_fn(cache, client)
        finally:
            await client.aclose()
    return asyncio.run(run())


def test_load_without_cache_returns_none(cache):
    assert cache.load() is None


def test_save_writes_flat_id_map(cache, dataset):
    assert cache.save(dataset.records) is True
    data = json.loads(cache.store.path.read_text())
    assert sorted(data) == ["1", "152", "20033", "4", "9999"]
    assert data["20033"]["englishName"] == "venusaur-mega"
    assert data["1"]["stats"]["sp_defense"] == 65
    loaded = cache.load()
    assert loaded[20033].category == "mega"
    assert loaded[1] == dataset.get(1)


def test_is_complete_checks_sample_record(make_record):
    assert is_complete({1: make_record(1, "A")}) is True
    assert is_complete({1: make_record(1, "A", weight=0)}) is False
    assert is_complete({1: make_record(1, "A", height=0)}) is False
    assert is_complete({1: make_record(1, "A", types=[])}) is False
    # Without id 1 the lowest id is the sample
    assert is_complete({7: make_record(7, "A", weight=0), 8: make_record(8, "B")}) is False
    assert is_complete({}) is False


def test_incomplete_cache_raises(cache, make_record):
    cache.save({1: make_record(1, "A", weight=0)})
    with pytest.raises(IncompleteCacheError):
        cache.load()


def test_corrupt_cache_raises(cache):
    cache.store.path.write_text("{not json")
    with pytest.raises(IncompleteCacheError):
        cache.load()


def test_save_failure_is_not_fatal(tmp_path, dataset, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    cache = DatasetCache(FileBlobStore(str(blocker / "pokemon.json")))
    assert cache.save(dataset.records) is False
    assert "Failed to write dataset cache" in caplog.text


def test_incomplete_cache_triggers_rebuild(cache, fake_api, make_record, small_builds):
    cache.save({1: make_record(1, "フシギダネ", weight=0)})
    ds = _run(load_or_build, fake_api, cache)
    assert ds.get(1).weight == 6.9
    assert ds.get(1).category == "kanto"
    assert "pokemon/1" in fake_api.requests
    # The cache file was overwritten with the rebuilt dataset
    assert cache.load()[1].weight == 6.9


def test_missing_cache_builds_classifies_and_saves(cache, fake_api, small_builds):
    ds = _run(load_or_build, fake_api, cache)
    assert [r.id for r in ds.pool("kanto")] == [1, 3]
    assert [r.name for r in ds.pool("mega")] == ["メガフシギバナ"]
    assert len(ds.pool("all")) == 4
    assert cache.store.path.exists()


def test_complete_cache_skips_provider(cache, fake_api, dataset):
    cache.save(dataset.records)
    ds = _run(load_or_build, fake_api, cache)
    assert fake_api.requests == []
    assert len(ds) == len(dataset)
    # Index is rebuilt in memory from the records
    assert [r.id for r in ds.pool("kanto")] == [1, 4]


def test_rebuild_dataset_swaps_current_snapshot(cache, fake_api, dataset, monkeypatch):
    monkeypatch.setattr(holder, "_current", None)
    cache.save(dataset.records)
    ds = _run(lambda c, client: rebuild_dataset(client=client, cache=c), fake_api, cache)
    assert holder.get() is ds


def test_unreadable_cache_triggers_rebuild(tmp_path, fake_api, small_builds, caplog):
    # A directory where the cache file should be cannot be read or replaced
    cache_dir = tmp_path / "pokemon.json"
    cache_dir.mkdir()
    cache = DatasetCache(FileBlobStore(str(cache_dir)))
    with pytest.raises(IncompleteCacheError):
        cache.load()
    ds = _run(load_or_build, fake_api, cache)
    assert ds.get(1).weight == 6.9
    assert "Failed to write dataset cache" in caplog.text
