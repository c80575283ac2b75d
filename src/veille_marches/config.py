# src/veille_marches/config.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Tuple

from veille_marches.errors import ConfigError
from veille_marches.persistence.paths import DEFAULT_DATABASE_PATH

# Division CPV 72 = services informatiques
DEFAULT_CPV_PREFIXES: Tuple[str, ...] = ("72",)


@dataclass(frozen=True)
class IngestionConfig:
    """
    Configuration d'un run d'ingestion.

    Tout ce qui vient de l'environnement est lu ici, les autres modules
    reçoivent un objet déjà validé.
    """

    database_url: str = f"sqlite:///{DEFAULT_DATABASE_PATH}"
    cpv_prefixes: Tuple[str, ...] = DEFAULT_CPV_PREFIXES
    exclusion_keywords: Tuple[str, ...] = ()
    http_timeout: int = 30
    page_size: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "IngestionConfig":
        defaults = cls()
        return cls(
            database_url=os.getenv("VEILLE_DATABASE_URL", defaults.database_url),
            cpv_prefixes=_parse_csv(os.getenv("VEILLE_CPV_PREFIXES"), defaults.cpv_prefixes),
            exclusion_keywords=_parse_csv(os.getenv("VEILLE_EXCLUSION_KEYWORDS"), ()),
            http_timeout=_parse_positive_int(
                "VEILLE_HTTP_TIMEOUT", os.getenv("VEILLE_HTTP_TIMEOUT"), defaults.http_timeout
            ),
            page_size=_parse_positive_int(
                "VEILLE_PAGE_SIZE", os.getenv("VEILLE_PAGE_SIZE"), defaults.page_size
            ),
            log_level=_parse_log_level(os.getenv("VEILLE_LOG_LEVEL", defaults.log_level)),
        )


def _parse_csv(raw: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """'72, 48' -> ('72', '48'). Une variable vide garde la valeur par défaut."""
    if raw is None or not raw.strip():
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_positive_int(name: str, raw: str | None, default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} doit être un entier, reçu '{raw}'") from exc
    if value <= 0:
        raise ConfigError(f"{name} doit être strictement positif, reçu {value}")
    return value


def _parse_log_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"VEILLE_LOG_LEVEL inconnu: '{raw}'")
    return level
