# src/veille_marches/persistence/json_store.py

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def save_run_report(
    path: Path,
    report: Any,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Sauvegarde le rapport d'un run (RunReport, RepairReport...) en JSON.

    - path : chemin du fichier de sortie
    - report : objet exposant `as_dict()`, ou dataclass
    - extra : métadonnées ajoutées au JSON (source, date traitée...)
    """
    if hasattr(report, "as_dict"):
        payload: Dict[str, Any] = report.as_dict()
    elif is_dataclass(report):
        payload = asdict(report)
    else:
        payload = dict(report)
    if extra:
        payload = {**extra, **payload}

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
    except OSError as exc:
        logger.error("Erreur lors de l'écriture du fichier JSON %s: %s", path, exc)
        raise
