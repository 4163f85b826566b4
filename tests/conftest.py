import asyncio

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pokequiz.db import Base
from pokequiz import models  # noqa: F401  registers tables
from pokequiz.dataset import Dataset, Record, Stats
from pokequiz.pokeapi_client import PokeAPIClient


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test_quiz.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_record():
    def _make(record_id, name, category="kanto", **kwargs):
        kwargs.setdefault("english_name", f"pokemon-{record_id}")
        kwargs.setdefault("stats", Stats(hp=45, attack=49, defense=49, sp_attack=65, sp_defense=65, speed=45))
        kwargs.setdefault("height", 0.7)
        kwargs.setdefault("weight", 6.9)
        kwargs.setdefault("types", ["くさ"])
        return Record(id=record_id, name=name, category=category, **kwargs)
    return _make


@pytest.fixture
def dataset(make_record):
    """Small dataset: two Kanto, one Johto, one mega form and one unclassified record."""
    records = [
        make_record(1, "フシギダネ", "kanto"),
        make_record(4, "ヒトカゲ", "kanto"),
        make_record(152, "チコリータ", "johto"),
        make_record(20033, "メガフシギバナ", "mega", english_name="venusaur-mega"),
        make_record(9999, "なぞのポケモン", ""),
    ]
    return Dataset({r.id: r for r in records})


BASE_URL = "https://pokeapi.test/api/v2"


def _names(**by_lang):
    return [{"language": {"name": lang.replace("_", "-")}, "name": name} for lang, name in by_lang.items()]


def _pokemon(pid, name, species_id, types, height, weight, stats=(45, 49, 49, 65, 65, 45)):
    stat_names = ["hp", "attack", "defense", "special-attack", "special-defense", "speed"]
    return {
        "id": pid,
        "name": name,
        "height": height,
        "weight": weight,
        "stats": [{"base_stat": v, "stat": {"name": n}} for n, v in zip(stat_names, stats)],
        "sprites": {"other": {"official-artwork": {"front_default": f"https://img.test/{pid}.png"}}},
        "species": {"url": f"{BASE_URL}/pokemon-species/{species_id}/"},
        "types": [{"slot": i + 1, "type": {"name": t}} for i, t in enumerate(types)],
    }


def _species(sid, slug, names, varieties=()):
    return {
        "id": sid,
        "name": slug,
        "names": names,
        "varieties": [{"is_default": True, "pokemon": {"name": slug}}]
        + [{"is_default": False, "pokemon": {"name": v}} for v in varieties],
    }


class FakePokeAPI:
    """In-memory PokeAPI served through httpx.MockTransport."""

    def __init__(self):
        self.routes = {
            "type/1": {"name": "grass", "names": _names(ja_Hrkt="くさ", ja="くさ", en="Grass")},
            "type/2": {"name": "poison", "names": _names(ja_Hrkt="どく", en="Poison")},
            "pokemon/1": _pokemon(1, "bulbasaur", 1, ["grass", "poison"], 7, 69),
            "pokemon-species/1": _species(1, "bulbasaur", _names(ja_Hrkt="フシギダネ", ja="フシギダネ", en="Bulbasaur"), ["venusaur-mega"]),
            "pokemon/3": _pokemon(3, "venusaur", 3, ["grass", "poison"], 20, 1000),
            "pokemon-species/3": _species(3, "venusaur", _names(ja="フシギバナ", en="Venusaur"), ["venusaur-mega", "venusaur-gmax"]),
            "pokemon/venusaur-mega": _pokemon(10033, "venusaur-mega", 3, ["grass", "poison"], 24, 1555),
            "pokemon-form/venusaur-mega": {"name": "venusaur-mega", "names": _names(ja_Hrkt="メガフシギバナ"), "form_names": []},
            "pokemon/venusaur-gmax": _pokemon(10195, "venusaur-gmax", 3, ["grass", "poison"], 240, 0),
            "generation/1": {"pokemon_species": [
                {"name": n, "url": f"{BASE_URL}/pokemon-species/{i}/"}
                for i, n in ((1, "bulbasaur"), (2, "ivysaur"), (3, "venusaur"))
            ]},
        }
        # pokemon/2 fails with a server error, pokemon/4 does not exist
        self.errors = {"pokemon/2": 500}
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0

    async def handler(self, request):
        path = request.url.path.split("/api/v2/", 1)[1].rstrip("/")
        self.requests.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if path in self.errors:
                return httpx.Response(self.errors[path], json={"detail": "error"})
            if path not in self.routes:
                return httpx.Response(404, text="Not Found")
            return httpx.Response(200, json=self.routes[path])
        finally:
            self.in_flight -= 1

    def client(self):
        return PokeAPIClient(base_url=BASE_URL, timeout=5, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_api():
    return FakePokeAPI()
