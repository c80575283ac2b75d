"""Tests du store `notices` : insertion unique, versions, propagation de traduction."""

from __future__ import annotations

from dataclasses import replace
from datetime import timezone

import pytest

from sample_documents import build_eforms_xml
from veille_marches.errors import StoreUnavailable
from veille_marches.models.analysis import NoticeAnalysis
from veille_marches.models.notice import NoticeStatus
from veille_marches.models.stored import StoredNotice, UpsertOutcome
from veille_marches.parsers.eforms_xml import parse_eforms_notice
from veille_marches.persistence.notice_store import NoticeStore
from veille_marches.persistence.tables import init_db
from veille_marches.services.identity import resolve_identity


def make_stored(version=None, buyer_name_en=None, **xml_kwargs) -> StoredNotice:
    parsed = parse_eforms_notice(build_eforms_xml(version=version, **xml_kwargs))
    identity = resolve_identity(parsed)
    stored = StoredNotice.from_parsed(
        parsed,
        notice_id=identity.notice_id,
        version=identity.version,
        versioned_key=identity.versioned_key,
        status=NoticeStatus.ACTIVE,
    )
    if buyer_name_en:
        stored = stored.with_analysis(NoticeAnalysis(buyer_name_en=buyer_name_en))
    return stored


def test_insert_then_unchanged(notice_store) -> None:
    notice = make_stored()

    assert notice_store.upsert(notice) is UpsertOutcome.INSERTED
    assert notice_store.upsert(notice) is UpsertOutcome.UNCHANGED
    assert notice_store.count() == 1


def test_seen_version_is_never_overwritten(notice_store) -> None:
    notice_store.upsert(make_stored())
    notice_store.upsert(make_stored(title="Ganz anderer Titel"))

    stored = notice_store.get("ABC-1-LOT-01-v01")
    assert stored.title == "Entwicklung einer Fachanwendung"


def test_new_version_gets_its_own_row(notice_store) -> None:
    assert notice_store.upsert(make_stored(version="01")) is UpsertOutcome.INSERTED
    assert notice_store.upsert(make_stored(version="02")) is UpsertOutcome.INSERTED

    keys = [n.versioned_key for n in notice_store.find_by_notice_id("ABC-1")]
    assert keys == ["ABC-1-LOT-01-v01", "ABC-1-LOT-01-v02"]


def test_round_trip_keeps_types(notice_store) -> None:
    notice = make_stored(estimated_amount="250000")
    notice_store.upsert(notice)

    stored = notice_store.get(notice.versioned_key)
    assert stored.status is NoticeStatus.ACTIVE
    assert stored.additional_cpv_codes == ("72260000",)
    assert stored.value_amount == notice.value_amount
    assert stored.publication_date == notice.publication_date
    assert stored.publication_date.tzinfo is not None
    assert stored.publication_date.utcoffset() == timezone.utc.utcoffset(None)
    assert stored.created_at is not None


def test_translation_backfilled_into_older_versions(notice_store) -> None:
    notice_store.upsert(make_stored(version="01"))

    outcome = notice_store.upsert(make_stored(version="02", buyer_name_en="City of Musterstadt"))

    assert outcome is UpsertOutcome.INSERTED
    assert notice_store.get("ABC-1-LOT-01-v01").buyer_name_en == "City of Musterstadt"


def test_translation_reaches_every_sibling_and_nothing_else(notice_store) -> None:
    notice_store.upsert(make_stored(version="01"))
    notice_store.upsert(make_stored(version="02"))
    before = {key: notice_store.get(key) for key in ("ABC-1-LOT-01-v01", "ABC-1-LOT-01-v02")}

    notice_store.upsert(make_stored(version="03", buyer_name_en="City of Musterstadt"))

    siblings = notice_store.find_by_notice_id("ABC-1")
    assert len(siblings) == 3
    assert {s.buyer_name_en for s in siblings} == {"City of Musterstadt"}
    for key, old in before.items():
        assert notice_store.get(key) == replace(old, buyer_name_en="City of Musterstadt")


def test_new_version_inherits_known_translation(notice_store) -> None:
    notice_store.upsert(make_stored(version="01", buyer_name_en="City of Musterstadt"))

    notice_store.upsert(make_stored(version="02"))

    assert notice_store.get("ABC-1-LOT-01-v02").buyer_name_en == "City of Musterstadt"


def test_backfilling_own_row_reports_updated(notice_store) -> None:
    notice_store.upsert(make_stored(version="01"))

    outcome = notice_store.upsert(make_stored(version="01", buyer_name_en="City of Musterstadt"))

    assert outcome is UpsertOutcome.UPDATED
    assert notice_store.get("ABC-1-LOT-01-v01").buyer_name_en == "City of Musterstadt"


def test_existing_translation_is_not_replaced(notice_store) -> None:
    notice_store.upsert(make_stored(version="01", buyer_name_en="City of Musterstadt"))

    outcome = notice_store.upsert(make_stored(version="01", buyer_name_en="Musterstadt Town"))

    assert outcome is UpsertOutcome.UNCHANGED
    assert notice_store.get("ABC-1-LOT-01-v01").buyer_name_en == "City of Musterstadt"


def test_other_notices_untouched_by_backfill(notice_store) -> None:
    notice_store.upsert(make_stored(notice_id="OTHER-9"))
    notice_store.upsert(make_stored(buyer_name_en="City of Musterstadt"))

    assert notice_store.get("OTHER-9-LOT-01-v01").buyer_name_en is None


def test_rekey_refuses_existing_target(notice_store) -> None:
    first = make_stored(version="01")
    second = make_stored(version="02")
    notice_store.upsert(first)
    notice_store.upsert(second)

    assert notice_store.rekey(second.versioned_key, replace(second, versioned_key=first.versioned_key)) is False
    assert notice_store.count() == 2
    assert notice_store.get(second.versioned_key) is not None


def test_iter_notices_walks_all_rows(notice_store) -> None:
    for version in ("01", "02", "03"):
        notice_store.upsert(make_stored(version=version))

    keys = [n.versioned_key for n in notice_store.iter_notices(batch_size=2)]
    assert keys == ["ABC-1-LOT-01-v01", "ABC-1-LOT-01-v02", "ABC-1-LOT-01-v03"]


def test_unreachable_database_raises_store_unavailable(tmp_path) -> None:
    missing_dir = tmp_path / "absent" / "notices.db"
    with pytest.raises(StoreUnavailable):
        NoticeStore(init_db(f"sqlite:///{missing_dir}"))
