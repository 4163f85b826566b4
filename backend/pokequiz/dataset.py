from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .errors import NotFoundError


logger = logging.getLogger(__name__)

ALL_CATEGORY = "all"

# Region name -> PokeAPI generation id
REGION_GENERATIONS: Dict[str, int] = {
    "kanto": 1,
    "johto": 2,
    "hoenn": 3,
    "sinnoh": 4,
    "unova": 5,
    "kalos": 6,
    "alola": 7,
    "galar": 8,
    "paldea": 9,
}

MEGA = "mega"
GMAX = "gmax"
REGIONAL = "regional"
SPECIAL_CATEGORIES = (MEGA, GMAX, REGIONAL)

# Variant forms live above every native species id
VARIANT_ID_OFFSET = 10000


class Stats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hp: int = Field(default=0, ge=0)
    attack: int = Field(default=0, ge=0)
    defense: int = Field(default=0, ge=0)
    sp_attack: int = Field(default=0, ge=0)
    sp_defense: int = Field(default=0, ge=0)
    speed: int = Field(default=0, ge=0)


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(gt=0)
    name: str
    english_name: str = Field(default="", alias="englishName")
    category: str = ""
    stats: Stats = Field(default_factory=Stats)
    image_url: str = Field(default="", alias="imageUrl")
    height: float = Field(default=0.0, ge=0)
    weight: float = Field(default=0.0, ge=0)
    types: List[str] = Field(default_factory=list)


RecordMap = Dict[int, Record]

RECORD_MAP_ADAPTER = TypeAdapter(Dict[int, Record])


def build_category_index(records: Iterable[Record]) -> Dict[str, List[Record]]:
    """Group records by category, plus the synthetic "all" pool.

    A category pool never holds two records with the same display name; the
    later one (by id) is left out of that pool but stays in "all".
    """
    index: Dict[str, List[Record]] = {ALL_CATEGORY: []}
    seen_names: Dict[str, set] = {}
    for record in sorted(records, key=lambda r: r.id):
        index[ALL_CATEGORY].append(record)
        if not record.category:
            continue
        names = seen_names.setdefault(record.category, set())
        if record.name in names:
            logger.warning(
                "Duplicate name %r in category %s; leaving record %d out of that pool",
                record.name, record.category, record.id,
            )
            continue
        names.add(record.name)
        index.setdefault(record.category, []).append(record)
    for category, pool in sorted(index.items()):
        logger.info("Category %s has %d Pokemon.", category, len(pool))
    return index


class Dataset:
    """Read-only snapshot shared by every request handler."""

    def __init__(self, records: RecordMap) -> None:
        self._records: RecordMap = dict(records)
        self._index = build_category_index(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: int) -> Optional[Record]:
        return self._records.get(record_id)

    def pool(self, category: str) -> List[Record]:
        return self._index.get(category, [])

    @property
    def categories(self) -> List[str]:
        return sorted(self._index)

    @property
    def records(self) -> RecordMap:
        return dict(self._records)


class DatasetHolder:
    """Holds the current snapshot; a rebuild swaps the reference in one assignment."""

    def __init__(self) -> None:
        self._current: Optional[Dataset] = None

    def get(self) -> Dataset:
        current = self._current
        if current is None:
            raise NotFoundError("dataset is not loaded yet")
        return current

    def swap(self, dataset: Dataset) -> None:
        self._current = dataset


holder = DatasetHolder()


def get_dataset() -> Dataset:
    return holder.get()
