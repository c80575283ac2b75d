# src/veille_marches/services/repair.py

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import Optional

from veille_marches.errors import ParseError
from veille_marches.models.notice import ParsedNotice
from veille_marches.models.stored import StoredNotice
from veille_marches.parsers.eforms_xml import parse_eforms_notice
from veille_marches.parsers.ocds_release import parse_ocds_release
from veille_marches.persistence.notice_store import NoticeStore
from veille_marches.services.identity import (
    DEFAULT_VERSION,
    NoticeIdentity,
    is_legacy_key,
    normalize_version,
)
from veille_marches.services.status import resolve_status_from_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairReport:
    examined: int = 0
    rekeyed: int = 0
    status_fixed: int = 0
    identity_filled: int = 0
    conflicts: int = 0
    unparseable: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _reparse(notice: StoredNotice) -> Optional[ParsedNotice]:
    try:
        if notice.source == "ocds":
            return parse_ocds_release(notice.raw_payload, notice.versioned_key)
        return parse_eforms_notice(notice.raw_payload.encode("utf-8"), notice.versioned_key)
    except ParseError as exc:
        logger.warning("Ligne %s : document stocké illisible (%s)", notice.versioned_key, exc)
        return None


def repair_notices(store: NoticeStore) -> RepairReport:
    """
    Remet d'aplomb les lignes écrites par d'anciennes versions du pipeline :

    - statut recalculé depuis le document stocké ;
    - notice_id / version manquants relus dans le document (version '01'
      par défaut) ;
    - clés sans suffixe de version réécrites en `{notice_id}-{lot_id}-v{version}`.

    Si la clé cible existe déjà, la ligne est laissée en l'état et comptée
    en conflit : rien n'est jamais supprimé.
    """
    report = RepairReport()

    for notice in store.iter_notices():
        report = replace(report, examined=report.examined + 1)

        notice_id = notice.notice_id
        lot_id = notice.lot_id
        version = notice.version
        filled = False

        if not notice_id or not version:
            parsed = _reparse(notice)
            if parsed is None:
                report = replace(report, unparseable=report.unparseable + 1)
            else:
                notice_id = notice_id or parsed.source_notice_id
                lot_id = lot_id or parsed.lot_id
                version = version or normalize_version(parsed.version_token)
            version = version or DEFAULT_VERSION
            filled = bool(notice_id)

        if not notice_id:
            continue

        status = resolve_status_from_payload(notice.raw_payload)
        identity = NoticeIdentity(notice_id=notice_id, lot_id=lot_id, version=version)
        needs_rekey = is_legacy_key(notice.versioned_key)
        # une identité complétée impose aussi la clé qui en dérive
        target_key = identity.versioned_key if (needs_rekey or filled) else notice.versioned_key
        rekeyed = target_key != notice.versioned_key

        status_changed = status != notice.status
        if not (filled or needs_rekey or status_changed):
            continue

        repaired = replace(
            notice,
            notice_id=notice_id,
            lot_id=lot_id,
            version=version,
            versioned_key=target_key,
            status=status,
        )
        if not store.rekey(notice.versioned_key, repaired):
            report = replace(report, conflicts=report.conflicts + 1)
            continue

        logger.info("Ligne %s réparée -> %s (%s)", notice.versioned_key, target_key, status.value)
        report = replace(
            report,
            rekeyed=report.rekeyed + int(rekeyed),
            status_fixed=report.status_fixed + int(status_changed),
            identity_filled=report.identity_filled + int(filled),
        )

    logger.info(
        "Réparation terminée: %d examinées, %d re-clés, %d statuts, %d identités, %d conflits",
        report.examined,
        report.rekeyed,
        report.status_fixed,
        report.identity_filled,
        report.conflicts,
    )
    return report
