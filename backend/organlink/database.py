from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict

import motor.motor_asyncio
from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.uri_parser import parse_uri


BASE_DIR = Path(__file__).resolve().parents[1]
ENV_FILES = [BASE_DIR / ".env.local", BASE_DIR / ".env"]


class Settings(BaseSettings):
    registry_backend: str = "memory"
    mongodb_url: str = "mongodb://localhost:27017/organlink"
    mongo_server_timeout_ms: int = 2000
    mongo_connect_timeout_ms: int = 2000
    mongo_socket_timeout_ms: int = 2000

    blood_weight: int = 30
    urgency_weight: int = 25
    waiting_weight: int = 20
    geographic_weight: int = 15
    medical_weight: int = 10
    minimum_score: int = 40
    max_wait_days: int = 365
    geo_max_distance_km: float = 1000.0
    # "RegionA|RegionB" -> km, symmetric
    region_distances: Dict[str, float] = {}

    heart_preservation_hours: int = 6
    liver_preservation_hours: int = 12
    kidney_preservation_hours: int = 36
    proposal_timeout_min: int = 120
    event_history_limit: int = 200

    twilio_sid: str | None = None
    twilio_token: str | None = None
    twilio_phone: str | None = None
    auto_authorize_demo: bool = True

    model_config = SettingsConfigDict(
        env_file=[str(path) for path in ENV_FILES],
        case_sensitive=False,
        env_prefix="",
    )


def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def _resolve_database_name(uri: str | None) -> str:
    if uri:
        try:
            parsed = parse_uri(uri)
            if parsed.get("database"):
                return parsed["database"]
        except Exception as exc:  # pragma: no cover - malformed URI
            logger.warning("Unable to parse Mongo URI {} ({}). Using fallback database name.", uri, exc)
    return "organlink"


@lru_cache(maxsize=1)
def get_database() -> motor.motor_asyncio.AsyncIOMotorDatabase:
    client = motor.motor_asyncio.AsyncIOMotorClient(
        settings.mongodb_url,
        serverSelectionTimeoutMS=settings.mongo_server_timeout_ms,
        connectTimeoutMS=settings.mongo_connect_timeout_ms,
        socketTimeoutMS=settings.mongo_socket_timeout_ms,
    )
    database_name = _resolve_database_name(settings.mongodb_url)
    logger.info("Using MongoDB database {}", database_name)
    return client.get_database(database_name)
