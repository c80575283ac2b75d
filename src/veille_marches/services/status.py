# src/veille_marches/services/status.py

from __future__ import annotations

import logging
from typing import Union

from veille_marches.errors import ParseError
from veille_marches.models.notice import NoticeKind, NoticeStatus, StatusHint
from veille_marches.parsers.eforms_xml import read_status_hint
from veille_marches.parsers.ocds_release import load_release

logger = logging.getLogger(__name__)


def resolve_status(kind: NoticeKind, has_change_marker: bool = False) -> NoticeStatus:
    """
    Awarded si l'avis est un avis d'attribution, Amendment s'il porte un
    identifiant d'avis modifié, Active sinon.
    """
    if kind is NoticeKind.CONTRACT_AWARD_NOTICE:
        return NoticeStatus.AWARDED
    if has_change_marker:
        return NoticeStatus.AMENDMENT
    return NoticeStatus.ACTIVE


def resolve_status_from_hint(hint: StatusHint) -> NoticeStatus:
    return resolve_status(hint.kind, hint.has_change_marker)


def resolve_status_from_payload(raw: Union[str, bytes, None]) -> NoticeStatus:
    """
    Recalcule le statut depuis le document brut stocké (XML eForms ou
    release OCDS). Ne lève jamais : un document illisible donne Active.
    """
    if not raw:
        return NoticeStatus.ACTIVE

    try:
        data = raw.encode("utf-8") if isinstance(raw, str) else raw
        if data.lstrip().startswith(b"{"):
            release = load_release(data)
            awards = release.get("awards")
            kind = (
                NoticeKind.CONTRACT_AWARD_NOTICE
                if isinstance(awards, list) and awards
                else NoticeKind.CONTRACT_NOTICE
            )
            return resolve_status(kind)
        return resolve_status_from_hint(read_status_hint(data))
    except ParseError as exc:
        logger.debug("Statut non déterminable (%s), Active par défaut", exc)
        return NoticeStatus.ACTIVE
    except Exception as exc:
        # fonction totale : aucune erreur ne remonte à l'appelant
        logger.warning("Document stocké inexploitable (%r), Active par défaut", exc)
        return NoticeStatus.ACTIVE
