# src/veille_marches/models/analysis.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class NoticeAnalysis:
    """
    Résultat renvoyé par le service d'analyse / traduction externe.

    Tous les champs sont facultatifs : une analyse partielle reste utile.
    """

    title_en: Optional[str] = None
    buyer_name_en: Optional[str] = None
    summary: Tuple[str, ...] = ()
    fatal_flaws: Tuple[str, ...] = ()
    tech_stack: Tuple[str, ...] = ()
    suitability_score: Optional[float] = None
