# src/veille_marches/persistence/paths.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional

# Racine du dépôt : src/veille_marches/persistence/ -> 3 niveaux au-dessus
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DATA_DIR = PROJECT_ROOT / "data"

# Rapports JSON des runs (ingestion et réparation)
REPORTS_DIR = DATA_DIR / "reports"

# Base SQLite utilisée quand VEILLE_DATABASE_URL n'est pas fourni
DEFAULT_DATABASE_PATH = DATA_DIR / "notices.db"


def ensure_data_dirs() -> None:
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def today_suffix(d: Optional[date] = None) -> str:
    """Date au format YYYYMMDD (aujourd'hui par défaut)."""
    return (d or date.today()).strftime("%Y%m%d")


def report_path(kind: str, d: Optional[date] = None) -> Path:
    """
    Chemin du rapport d'un run, ex. data/reports/eforms_20250301.json.

    `kind` identifie le run : 'eforms', 'uk_awards' ou 'repair'.
    """
    return REPORTS_DIR / f"{kind}_{today_suffix(d)}.json"
