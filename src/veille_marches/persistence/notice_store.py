# src/veille_marches/persistence/notice_store.py

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Iterator, List, Optional

from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from veille_marches.models.notice import NoticeStatus
from veille_marches.models.stored import StoredNotice, UpsertOutcome
from veille_marches.persistence.tables import (
    NoticeRow,
    init_db,
    quantize_amount,
    session_scope,
)
from veille_marches.services.normalization import utc_now

logger = logging.getLogger(__name__)

_FIELD_NAMES = [f.name for f in fields(StoredNotice)]
_LIST_FIELDS = ("additional_cpv_codes", "fatal_flaws", "tech_stack")


# =========================
# Conversions ligne <-> dataclass
# =========================

def _to_row(notice: StoredNotice) -> NoticeRow:
    values = {name: getattr(notice, name) for name in _FIELD_NAMES}
    values["status"] = notice.status.value
    values["value_amount"] = quantize_amount(notice.value_amount)
    for name in _LIST_FIELDS:
        values[name] = list(values[name])
    values["created_at"] = notice.created_at or utc_now()
    return NoticeRow(**values)


def _from_row(row: NoticeRow) -> StoredNotice:
    values = {name: getattr(row, name) for name in _FIELD_NAMES}
    values["status"] = NoticeStatus(row.status)
    for name in _LIST_FIELDS:
        values[name] = tuple(values[name] or ())
    return StoredNotice(**values)


def _missing_translation():
    return or_(NoticeRow.buyer_name_en.is_(None), NoticeRow.buyer_name_en == "")


# =========================
# Store
# =========================

class NoticeStore:
    """
    Table `notices` : une ligne par (avis, lot, version).

    Une ligne n'est jamais écrasée ni supprimée ; seule la traduction du
    nom de l'acheteur (buyer_name_en) peut être complétée après coup.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def open(cls, database_url: str) -> "NoticeStore":
        return cls(init_db(database_url))

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory

    def ping(self) -> None:
        """Lève StoreUnavailable si la base ne répond pas."""
        with session_scope(self._session_factory) as session:
            session.execute(text("SELECT 1"))

    # ---------- écriture ----------

    def upsert(self, candidate: StoredNotice) -> UpsertOutcome:
        """
        Insère la ligne si la clé versionnée est inconnue, puis propage la
        traduction du nom de l'acheteur entre versions d'un même avis.

        - clé inconnue                         -> INSERTED
        - clé connue, ligne complétée          -> UPDATED
        - clé connue, rien à faire             -> UNCHANGED
        """
        with session_scope(self._session_factory) as session:
            inserted = self._insert_if_absent(session, candidate)
            own_row_filled = self._propagate_buyer_translation(session, candidate)

        if inserted:
            logger.debug("Nouvelle ligne %s", candidate.versioned_key)
            return UpsertOutcome.INSERTED
        if own_row_filled:
            logger.debug("Traduction acheteur complétée pour %s", candidate.versioned_key)
            return UpsertOutcome.UPDATED
        return UpsertOutcome.UNCHANGED

    def _insert_if_absent(self, session: Session, candidate: StoredNotice) -> bool:
        # La contrainte unique tranche : pas de lecture préalable
        try:
            with session.begin_nested():
                session.add(_to_row(candidate))
        except IntegrityError:
            return False
        return True

    def _propagate_buyer_translation(self, session: Session, candidate: StoredNotice) -> bool:
        """
        Écrit la traduction connue dans toutes les lignes du même notice_id
        où elle est vide. Renvoie True si la ligne du candidat a été touchée
        alors qu'elle existait déjà.
        """
        translation = candidate.buyer_name_en
        if not translation:
            translation = session.scalar(
                select(NoticeRow.buyer_name_en)
                .where(NoticeRow.notice_id == candidate.notice_id)
                .where(NoticeRow.buyer_name_en.is_not(None))
                .where(NoticeRow.buyer_name_en != "")
                .order_by(NoticeRow.id)
                .limit(1)
            )
        if not translation:
            return False

        rows = session.scalars(
            select(NoticeRow)
            .where(NoticeRow.notice_id == candidate.notice_id)
            .where(_missing_translation())
        ).all()

        for row in rows:
            row.buyer_name_en = translation
        session.flush()

        if rows:
            logger.debug(
                "Traduction '%s' propagée à %d ligne(s) de %s",
                translation,
                len(rows),
                candidate.notice_id,
            )
        return any(row.versioned_key == candidate.versioned_key for row in rows)

    def rekey(self, old_key: str, repaired: StoredNotice) -> bool:
        """
        Réécrit identité / statut d'une ligne existante.

        Renvoie False (sans rien modifier) si la nouvelle clé est déjà prise.
        """
        with session_scope(self._session_factory) as session:
            row = session.scalar(select(NoticeRow).where(NoticeRow.versioned_key == old_key))
            if row is None:
                return False
            try:
                with session.begin_nested():
                    row.versioned_key = repaired.versioned_key
                    row.notice_id = repaired.notice_id
                    row.lot_id = repaired.lot_id
                    row.version = repaired.version
                    row.status = repaired.status.value
            except IntegrityError:
                logger.warning(
                    "Clé %s déjà présente, ligne %s laissée telle quelle",
                    repaired.versioned_key,
                    old_key,
                )
                return False
        return True

    # ---------- lecture ----------

    def get(self, versioned_key: str) -> Optional[StoredNotice]:
        with session_scope(self._session_factory) as session:
            row = session.scalar(select(NoticeRow).where(NoticeRow.versioned_key == versioned_key))
            return _from_row(row) if row is not None else None

    def find_by_notice_id(self, notice_id: str) -> List[StoredNotice]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(NoticeRow).where(NoticeRow.notice_id == notice_id).order_by(NoticeRow.id)
            ).all()
            return [_from_row(r) for r in rows]

    def count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(NoticeRow)) or 0

    def iter_notices(self, batch_size: int = 500) -> Iterator[StoredNotice]:
        """Parcourt toute la table par paquets (ordre d'insertion)."""
        last_id = 0
        while True:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(NoticeRow)
                    .where(NoticeRow.id > last_id)
                    .order_by(NoticeRow.id)
                    .limit(batch_size)
                ).all()
                batch = [_from_row(r) for r in rows]
                if rows:
                    last_id = rows[-1].id
            if not batch:
                return
            yield from batch

