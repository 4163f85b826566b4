from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .dataset import GMAX, MEGA, REGION_GENERATIONS, REGIONAL, Record, RecordMap
from .errors import QuizServiceError
from .pokeapi_client import PokeAPIClient


logger = logging.getLogger(__name__)

# Checked in order; "-mega" also covers "-mega-x" / "-mega-y"
SPECIAL_FORM_PATTERNS = (
    (MEGA, re.compile(r"-mega(-|$)")),
    (GMAX, re.compile(r"-gmax(-|$)")),
    (REGIONAL, re.compile(r"-(alola|galar|hisui|paldea)(-|$)")),
)


def special_category(source_name: str) -> Optional[str]:
    """Return the special category a provider source name belongs to, if any."""
    for category, pattern in SPECIAL_FORM_PATTERNS:
        if pattern.search(source_name or ""):
            return category
    return None


def classify_by_name(records: Iterable[Record]) -> None:
    for record in records:
        if record.category:
            continue
        category = special_category(record.english_name)
        if category:
            record.category = category


def assign_generation(records: RecordMap, region: str, member_ids: Iterable[int]) -> int:
    assigned = 0
    for species_id in member_ids:
        record = records.get(species_id)
        if record is not None and not record.category:
            record.category = region
            assigned += 1
    return assigned


async def classify(records: RecordMap, client: PokeAPIClient) -> None:
    """Set ``category`` on every record in place; an existing category is never overwritten."""
    classify_by_name(records.values())
    for region, gen_id in REGION_GENERATIONS.items():
        try:
            members = await client.fetch_generation_members(gen_id)
        except QuizServiceError as err:
            logger.warning("Error fetching generation %s: %s", region, err)
            continue
        assigned = assign_generation(records, region, members)
        logger.debug("Assigned %d Pokemon to %s", assigned, region)
    unclassified = sum(1 for r in records.values() if not r.category)
    if unclassified:
        logger.info("%d Pokemon have no category and only appear in the all pool", unclassified)
