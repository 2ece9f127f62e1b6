"""
config.py — Placeholder text, gap wording and logging settings, read from the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEAD_MATCHING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Display placeholders ─────────────────────────────────────────────
    placeholder_image: str = "/images/product-placeholder.jpg"
    placeholder_vendor: str = "Fournisseur"
    placeholder_title: str = "Produit {product_id}"
    missing_value: str = "-"

    # ── Registry fallbacks ───────────────────────────────────────────────
    characteristic_placeholder: str = "Characteristic #{characteristic_id}"
    value_placeholder: str = "Value #{value_id}"

    # ── Gap report wording ───────────────────────────────────────────────
    unavailable_text: str = "non disponible"
    requested_text: str = "demandé"

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"  # text | json
    log_file: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid = {"text", "json"}
        if v.lower() not in valid:
            raise ValueError(f"log_format must be one of {valid}")
        return v.lower()

    def title_for(self, product_id: str) -> str:
        return self.placeholder_title.format(product_id=product_id)

    def characteristic_label_for(self, characteristic_id: int) -> str:
        return self.characteristic_placeholder.format(characteristic_id=characteristic_id)

    def value_label_for(self, value_id: int) -> str:
        return self.value_placeholder.format(value_id=value_id)


@lru_cache
def get_settings() -> Settings:
    return Settings()


TEXT_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
JSON_LOG_FORMAT = (
    '{"ts": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install the root handler for applications embedding the library."""
    settings = settings or get_settings()
    fmt = JSON_LOG_FORMAT if settings.log_format == "json" else TEXT_LOG_FORMAT
    kwargs = {"level": settings.log_level, "format": fmt, "force": True}
    if settings.log_file:
        kwargs["filename"] = settings.log_file
    logging.basicConfig(**kwargs)
