from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .builder import DatasetBuilder
from .classifier import classify
from .dataset import RECORD_MAP_ADAPTER, Dataset, RecordMap, holder
from .errors import IncompleteCacheError, PersistenceWriteError
from .pokeapi_client import PokeAPIClient
from .settings import settings


logger = logging.getLogger(__name__)

# Record used for the completeness check when present (Bulbasaur)
SAMPLE_RECORD_ID = 1


class FileBlobStore:
    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def read_blob(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        try:
            return self.path.read_bytes()
        except OSError as err:
            raise IncompleteCacheError(f"could not read {self.path}: {err}") from err

    def write_blob(self, data: bytes) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(self.path)
        except OSError as err:
            raise PersistenceWriteError(f"could not write {self.path}: {err}") from err


def is_complete(records: RecordMap) -> bool:
    """Heuristic: the sample record has types, height and weight."""
    if not records:
        return False
    sample = records.get(SAMPLE_RECORD_ID) or records[min(records)]
    return bool(sample.types) and sample.height > 0 and sample.weight > 0


class DatasetCache:
    def __init__(self, store: FileBlobStore) -> None:
        self.store = store

    def load(self) -> Optional[RecordMap]:
        """Return cached records, ``None`` when there is no cache.

        Raises IncompleteCacheError when the cache cannot be trusted.
        """
        blob = self.store.read_blob()
        if blob is None:
            return None
        try:
            records = RECORD_MAP_ADAPTER.validate_json(blob)
        except ValidationError as err:
            raise IncompleteCacheError(f"cached dataset could not be decoded: {err}") from err
        if not is_complete(records):
            raise IncompleteCacheError("cached dataset is missing types, height or weight")
        return records

    def save(self, records: RecordMap) -> bool:
        try:
            self.store.write_blob(RECORD_MAP_ADAPTER.dump_json(records, by_alias=True, indent=2))
        except PersistenceWriteError as err:
            logger.error("Failed to write dataset cache: %s", err)
            return False
        return True


async def build_records(client: PokeAPIClient) -> RecordMap:
    records, skipped = await DatasetBuilder(client).build()
    if skipped:
        logger.info("Skipped %d ids during build", len(skipped))
    # Classification only starts after the build barrier
    logger.info("Fetching category data from PokeAPI...")
    await classify(records, client)
    return records


async def load_or_build(cache: DatasetCache, client: PokeAPIClient) -> Dataset:
    try:
        records = cache.load()
    except IncompleteCacheError as err:
        logger.warning("Cached data is incomplete (%s). Refetching all data from PokeAPI...", err)
        records = None
    else:
        if records is None:
            logger.info("%s not found. Fetching from PokeAPI...", cache.store.path)
        else:
            logger.info("Loaded %d Pokemon from %s", len(records), cache.store.path)
            return Dataset(records)

    records = await build_records(client)
    if cache.save(records):
        logger.info("Saved %d Pokemon to %s", len(records), cache.store.path)
    return Dataset(records)


async def rebuild_dataset(client: Optional[PokeAPIClient] = None, cache: Optional[DatasetCache] = None) -> Dataset:
    """Startup entry point: load or build the dataset and make it current."""
    cache = cache or DatasetCache(FileBlobStore(settings.dataset_cache_path))
    owns_client = client is None
    client = client or PokeAPIClient()
    try:
        dataset = await load_or_build(cache, client)
    finally:
        if owns_client:
            await client.aclose()
    holder.swap(dataset)
    return dataset
