from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from .classifier import special_category
from .dataset import VARIANT_ID_OFFSET, Record, RecordMap
from .errors import ProviderNotFound, TransientFetchError
from .pokeapi_client import ItemAttrs, LocalizedNames, PokeAPIClient, SpeciesNaming
from .settings import settings


logger = logging.getLogger(__name__)


class _Registry:
    """Shared build state; every write happens under ``lock``."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.records: RecordMap = {}
        self.source_names: Set[str] = set()
        self.pending_variants: Dict[str, str] = {}
        self.skipped: List[int] = []

    def add(self, record: Record) -> bool:
        if record.english_name in self.source_names:
            return False
        self.records[record.id] = record
        self.source_names.add(record.english_name)
        return True


class DatasetBuilder:
    def __init__(
        self,
        client: PokeAPIClient,
        *,
        max_id: Optional[int] = None,
        concurrency: Optional[int] = None,
        languages: Optional[List[str]] = None,
        type_count: Optional[int] = None,
    ) -> None:
        self.client = client
        self.max_id = max_id if max_id is not None else settings.max_species_id
        self.concurrency = concurrency or settings.fetch_concurrency
        self.languages = languages or settings.name_languages
        self.type_count = type_count if type_count is not None else settings.type_count
        self._type_names: Dict[str, str] = {}

    async def build(self) -> Tuple[RecordMap, List[int]]:
        """Fetch every species id, then every special form, and return (records, skipped ids).

        Categories are left for the classifier except on special forms, which
        carry their category from the start.
        """
        await self._load_type_names()
        semaphore = asyncio.Semaphore(self.concurrency)
        registry = _Registry()

        await asyncio.gather(
            *(self._fetch_species(species_id, semaphore, registry) for species_id in range(1, self.max_id + 1))
        )
        # Every base worker has finished, so the variant queue is complete
        variants = sorted(registry.pending_variants.items())
        await asyncio.gather(
            *(self._fetch_variant(name, category, semaphore, registry) for name, category in variants)
        )
        logger.info(
            "Fetched %d Pokemon (%d forms), skipped %d ids",
            len(registry.records), len(variants), len(registry.skipped),
        )
        return registry.records, sorted(registry.skipped)

    async def _load_type_names(self) -> None:
        if self._type_names:
            return
        logger.info("Fetching Pokemon type names...")
        for type_id in range(1, self.type_count + 1):
            try:
                naming = await self.client.fetch_type_naming(type_id)
            except (ProviderNotFound, TransientFetchError) as err:
                logger.warning("Error fetching type %d: %s", type_id, err)
                continue
            localized = naming.pick(self.languages)
            if localized:
                self._type_names[naming.slug] = localized

    async def _fetch_species(self, species_id: int, semaphore: asyncio.Semaphore, registry: _Registry) -> None:
        async with semaphore:
            try:
                attrs = await self.client.fetch_item(species_id)
                naming = await self.client.fetch_naming(attrs.species_id or species_id)
            except ProviderNotFound:
                # Sparse ids are expected
                async with registry.lock:
                    registry.skipped.append(species_id)
                return
            except TransientFetchError as err:
                logger.warning("Error fetching pokemon %d: %s", species_id, err)
                async with registry.lock:
                    registry.skipped.append(species_id)
                return

        try:
            record = self.assemble(attrs, naming)
        except ValidationError as err:
            logger.warning("Invalid data for pokemon %d: %s", species_id, err)
            async with registry.lock:
                registry.skipped.append(species_id)
            return
        async with registry.lock:
            registry.add(record)
            for variant in naming.varieties:
                category = special_category(variant)
                if category and variant not in registry.source_names:
                    registry.pending_variants.setdefault(variant, category)

    async def _fetch_variant(self, name: str, category: str, semaphore: asyncio.Semaphore, registry: _Registry) -> None:
        async with registry.lock:
            if name in registry.source_names:
                return
        async with semaphore:
            try:
                attrs = await self.client.fetch_item(name)
                naming = await self.client.fetch_naming(attrs.species_id or attrs.id)
            except ProviderNotFound:
                return
            except TransientFetchError as err:
                logger.warning("Error fetching variety %s: %s", name, err)
                return
            try:
                form = await self.client.fetch_form_naming(name)
            except (ProviderNotFound, TransientFetchError) as err:
                logger.debug("No form naming for %s: %s", name, err)
                form = None

        try:
            record = self.assemble(attrs, naming, form=form)
        except ValidationError as err:
            logger.warning("Invalid data for variety %s: %s", name, err)
            return
        record.id = attrs.id + VARIANT_ID_OFFSET
        record.category = category
        async with registry.lock:
            registry.add(record)

    def assemble(self, attrs: ItemAttrs, naming: SpeciesNaming, *, form: Optional[LocalizedNames] = None) -> Record:
        """Build a record from provider payloads, converting to metres and kilograms."""
        species_name = naming.pick(self.languages) or attrs.name
        name = species_name
        if form is not None:
            full_name = form.pick(self.languages)
            suffix = next((form.form_names[lang] for lang in self.languages if form.form_names.get(lang)), "")
            if full_name:
                name = full_name
            elif suffix:
                name = f"{species_name}（{suffix}）"
        return Record(
            id=attrs.id,
            name=name,
            english_name=attrs.name,
            stats=attrs.stats,
            image_url=attrs.image_url,
            height=attrs.height_dm / 10.0,
            weight=attrs.weight_hg / 10.0,
            types=[self._type_names.get(slug, slug) for slug in attrs.type_slugs],
        )
