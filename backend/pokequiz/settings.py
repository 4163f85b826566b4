from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration; the service refuses to start without a secret
	jwt_secret_key: str | None = Field(default=None, validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# Database (SQLite file when unset)
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# CORS origin of the quiz frontend
	frontend_url: str | None = Field(default=None, validation_alias="FRONTEND_URL")

	# PokeAPI ingestion
	pokeapi_base_url: str = Field(default="https://pokeapi.co/api/v2", validation_alias="POKEAPI_BASE_URL")
	pokeapi_timeout_seconds: float = Field(default=20.0, validation_alias="POKEAPI_TIMEOUT_SECONDS")
	fetch_concurrency: int = Field(default=10, validation_alias="FETCH_CONCURRENCY")
	# Paldea ends at 1025
	max_species_id: int = Field(default=1025, validation_alias="MAX_SPECIES_ID")
	type_count: int = Field(default=18, validation_alias="TYPE_COUNT")
	# Localized name preference, first match wins (kanji names before kana)
	name_languages: List[str] = Field(default_factory=lambda: ["ja", "ja-Hrkt"], validation_alias="NAME_LANGUAGES")

	# Dataset cache file
	dataset_cache_path: str = Field(default="pokemon.json", validation_alias="DATASET_CACHE_PATH")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
