# src/veille_marches/services/enrichment.py

from __future__ import annotations

import logging
from typing import Optional, Protocol

from veille_marches.models.analysis import NoticeAnalysis
from veille_marches.models.notice import ParsedNotice

logger = logging.getLogger(__name__)


class NoticeAnalyzer(Protocol):
    """Service externe de traduction / résumé (LLM, API de traduction...)."""

    def analyze(self, text: str) -> NoticeAnalysis:
        ...


def analysis_input(notice: ParsedNotice) -> str:
    """Texte envoyé à l'analyseur : intitulé, acheteur, description."""
    parts = [notice.title]
    if notice.buyer.name:
        parts.append(f"Buyer: {notice.buyer.name}")
    if notice.description:
        parts.append(notice.description)
    return "\n\n".join(parts)


def analyze_safely(
    analyzer: Optional[NoticeAnalyzer],
    notice: ParsedNotice,
) -> Optional[NoticeAnalysis]:
    """
    Enrichissement facultatif : pas d'analyseur ou analyseur en échec
    -> None, et l'avis est enregistré sans enrichissement.
    """
    if analyzer is None:
        return None
    try:
        return analyzer.analyze(analysis_input(notice))
    except Exception as exc:
        logger.warning(
            "Analyse impossible pour %s (%s: %s), enregistrement sans enrichissement",
            notice.source_notice_id,
            type(exc).__name__,
            exc,
        )
        return None
