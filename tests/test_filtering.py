"""Tests des filtres (nom de fichier GUID, périmètre CPV, mots-clés)."""

from __future__ import annotations

import pytest

from sample_documents import NOTICE_GUID, build_eforms_xml
from veille_marches.parsers.eforms_xml import parse_eforms_notice
from veille_marches.services.filtering import is_guid_filename, is_notice_in_domain


@pytest.mark.parametrize(
    "filename, expected",
    [
        (f"{NOTICE_GUID}.xml", True),
        (f"{NOTICE_GUID}-01.xml", True),
        (f"export/2025-03-01/{NOTICE_GUID.upper()}-02.XML", True),
        ("12345-2025.xml", False),
        ("bekanntmachung_unterschwelle.xml", False),
        (f"{NOTICE_GUID}.json", False),
        ("", False),
    ],
)
def test_is_guid_filename(filename, expected) -> None:
    assert is_guid_filename(filename) is expected


def test_cpv_prefix_filter() -> None:
    it_notice = parse_eforms_notice(build_eforms_xml(cpv="72212000"))
    works_notice = parse_eforms_notice(build_eforms_xml(cpv="45000000"))

    assert is_notice_in_domain(it_notice, ("72",)) is True
    assert is_notice_in_domain(works_notice, ("72",)) is False
    assert is_notice_in_domain(works_notice, ("72", "45")) is True


def test_empty_prefix_list_disables_cpv_filter() -> None:
    works_notice = parse_eforms_notice(build_eforms_xml(cpv="45000000"))
    assert is_notice_in_domain(works_notice, ()) is True


def test_exclusion_keywords_are_case_insensitive() -> None:
    notice = parse_eforms_notice(
        build_eforms_xml(description="Lieferung von Hardware und Wartung der Drucker.")
    )

    assert is_notice_in_domain(notice, ("72",), ("hardware",)) is False
    assert is_notice_in_domain(notice, ("72",), ("Cloud",)) is True
