from __future__ import annotations
import httpx
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from .dataset import Stats
from .errors import ProviderNotFound, TransientFetchError
from .settings import settings


_STAT_FIELDS = {
	"hp": "hp",
	"attack": "attack",
	"defense": "defense",
	"special-attack": "sp_attack",
	"special-defense": "sp_defense",
	"speed": "speed",
}


class ItemAttrs(BaseModel):
	id: int
	name: str
	stats: Stats
	image_url: str = ""
	# Provider units: decimetres and hectograms
	height_dm: float = 0
	weight_hg: float = 0
	type_slugs: List[str] = Field(default_factory=list)
	species_id: Optional[int] = None


class LocalizedNames(BaseModel):
	slug: str = ""
	names: Dict[str, str] = Field(default_factory=dict)
	form_names: Dict[str, str] = Field(default_factory=dict)

	def pick(self, languages: List[str]) -> str:
		for lang in languages:
			if self.names.get(lang):
				return self.names[lang]
		return ""


class SpeciesNaming(LocalizedNames):
	# Source names of the non-default varieties (forms) of the species
	varieties: List[str] = Field(default_factory=list)


def id_from_url(url: str) -> int:
	# "https://pokeapi.co/api/v2/pokemon-species/1/" -> 1
	return int(url.rstrip("/").rsplit("/", 1)[-1])


def _names_by_language(entries: List[Dict[str, Any]]) -> Dict[str, str]:
	names: Dict[str, str] = {}
	for entry in entries or []:
		lang = entry["language"]["name"]
		# First entry per language wins
		names.setdefault(lang, entry["name"])
	return names


class PokeAPIClient:
	def __init__(
		self,
		*,
		base_url: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.base_url = (base_url or settings.pokeapi_base_url).rstrip("/")
		self._client = httpx.AsyncClient(
			timeout=timeout if timeout is not None else settings.pokeapi_timeout_seconds,
			transport=transport,
		)

	async def _get_json(self, path_or_url: str) -> Dict[str, Any]:
		url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}/{path_or_url.lstrip('/')}"
		try:
			r = await self._client.get(url)
		except httpx.HTTPError as err:
			# Timeouts land here too
			raise TransientFetchError(f"GET {url} failed: {err}") from err
		if r.status_code == 404:
			raise ProviderNotFound(f"{url} not found")
		try:
			r.raise_for_status()
			data = r.json()
		except httpx.HTTPStatusError as err:
			raise TransientFetchError(f"GET {url} returned {r.status_code}") from err
		except ValueError as err:
			raise TransientFetchError(f"GET {url} returned invalid JSON") from err
		if not isinstance(data, dict):
			raise TransientFetchError(f"GET {url} returned {type(data).__name__}, expected an object")
		return data

	async def fetch_item(self, id_or_name: Union[int, str]) -> ItemAttrs:
		data = await self._get_json(f"pokemon/{id_or_name}")
		try:
			stat_values: Dict[str, int] = {}
			for s in data.get("stats") or []:
				field = _STAT_FIELDS.get(s["stat"]["name"])
				if field:
					stat_values[field] = s["base_stat"]
			artwork = (((data.get("sprites") or {}).get("other") or {}).get("official-artwork") or {}).get("front_default")
			species_url = (data.get("species") or {}).get("url")
			return ItemAttrs(
				id=data["id"],
				name=data["name"],
				stats=Stats(**stat_values),
				image_url=artwork or "",
				height_dm=data.get("height") or 0,
				weight_hg=data.get("weight") or 0,
				type_slugs=[t["type"]["name"] for t in data.get("types") or []],
				species_id=id_from_url(species_url) if species_url else None,
			)
		except (AttributeError, KeyError, TypeError, ValueError) as err:
			raise TransientFetchError(f"Unexpected pokemon payload for {id_or_name}: {err}") from err

	async def fetch_naming(self, species_id: int) -> SpeciesNaming:
		data = await self._get_json(f"pokemon-species/{species_id}")
		try:
			return SpeciesNaming(
				slug=data.get("name", ""),
				names=_names_by_language(data.get("names")),
				varieties=[
					v["pokemon"]["name"]
					for v in data.get("varieties") or []
					if not v.get("is_default")
				],
			)
		except (AttributeError, KeyError, TypeError, ValueError) as err:
			raise TransientFetchError(f"Unexpected species payload for {species_id}: {err}") from err

	async def fetch_type_naming(self, type_id: int) -> LocalizedNames:
		data = await self._get_json(f"type/{type_id}")
		try:
			return LocalizedNames(slug=data["name"], names=_names_by_language(data.get("names")))
		except (AttributeError, KeyError, TypeError, ValueError) as err:
			raise TransientFetchError(f"Unexpected type payload for {type_id}: {err}") from err

	async def fetch_form_naming(self, name: str) -> LocalizedNames:
		data = await self._get_json(f"pokemon-form/{name}")
		try:
			return LocalizedNames(
				slug=data.get("name", name),
				names=_names_by_language(data.get("names")),
				form_names=_names_by_language(data.get("form_names")),
			)
		except (AttributeError, KeyError, TypeError, ValueError) as err:
			raise TransientFetchError(f"Unexpected form payload for {name}: {err}") from err

	async def fetch_generation_members(self, gen_id: int) -> List[int]:
		data = await self._get_json(f"generation/{gen_id}")
		ids: List[int] = []
		for species in data.get("pokemon_species") or []:
			try:
				ids.append(id_from_url(species["url"]))
			except (AttributeError, KeyError, TypeError, ValueError):
				continue
		return ids

	async def aclose(self) -> None:
		await self._client.aclose()
