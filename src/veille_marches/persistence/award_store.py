# src/veille_marches/persistence/award_store.py

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from veille_marches.models.stored import AwardReleaseRecord, UpsertOutcome
from veille_marches.persistence.tables import (
    AwardReleaseRow,
    init_db,
    quantize_amount,
    session_scope,
)
from veille_marches.services.normalization import utc_now

logger = logging.getLogger(__name__)

_FIELD_NAMES = [f.name for f in fields(AwardReleaseRecord) if f.name != "created_at"]
_LIST_FIELDS = ("additional_cpv_codes", "supplier_names", "supplier_ids")
_AMOUNT_FIELDS = ("tender_value_amount", "award_value_amount")


def _row_values(record: AwardReleaseRecord) -> Dict[str, Any]:
    """Valeurs telles qu'elles seront relues depuis la base."""
    values = {name: getattr(record, name) for name in _FIELD_NAMES}
    for name in _LIST_FIELDS:
        values[name] = list(values[name])
    for name in _AMOUNT_FIELDS:
        values[name] = quantize_amount(values[name])
    return values


def _from_row(row: AwardReleaseRow) -> AwardReleaseRecord:
    values = {name: getattr(row, name) for name in _FIELD_NAMES}
    for name in _LIST_FIELDS:
        values[name] = tuple(values[name] or ())
    values["created_at"] = row.created_at
    return AwardReleaseRecord(**values)


class AwardStore:
    """
    Table `award_releases` : une ligne par OCID.

    Une release plus récente remplace tous les champs, sauf created_at.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def open(cls, database_url: str) -> "AwardStore":
        return cls(init_db(database_url))

    def upsert(self, record: AwardReleaseRecord) -> UpsertOutcome:
        values = _row_values(record)

        with session_scope(self._session_factory) as session:
            try:
                with session.begin_nested():
                    session.add(AwardReleaseRow(created_at=utc_now(), **values))
                return UpsertOutcome.INSERTED
            except IntegrityError:
                pass

            existing = session.scalars(
                select(AwardReleaseRow).where(AwardReleaseRow.ocid == record.ocid)
            ).one()

            changed = [name for name, value in values.items() if getattr(existing, name) != value]
            if not changed:
                return UpsertOutcome.UNCHANGED

            for name in changed:
                setattr(existing, name, values[name])
            logger.debug("Release %s mise à jour (%s)", record.ocid, ", ".join(changed))
            return UpsertOutcome.UPDATED

    def get(self, ocid: str) -> Optional[AwardReleaseRecord]:
        with session_scope(self._session_factory) as session:
            row = session.scalar(select(AwardReleaseRow).where(AwardReleaseRow.ocid == ocid))
            return _from_row(row) if row is not None else None

    def count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(AwardReleaseRow)) or 0
