"""Tests de l'identité versionnée des avis."""

from __future__ import annotations

from sample_documents import build_eforms_xml
from veille_marches.parsers.eforms_xml import parse_eforms_notice
from veille_marches.services.identity import (
    DEFAULT_VERSION,
    NoticeIdentity,
    is_legacy_key,
    resolve_identity,
    versioned_key,
)


def test_versioned_key_format() -> None:
    assert versioned_key("ABC-1", "LOT-01", "02") == "ABC-1-LOT-01-v02"


def test_version_defaults_to_01() -> None:
    assert versioned_key("ABC-1", "LOT-01", None) == "ABC-1-LOT-01-v01"
    assert versioned_key("ABC-1", "LOT-01", "  ") == "ABC-1-LOT-01-v01"


def test_resolve_identity_from_parsed_notice() -> None:
    identity = resolve_identity(parse_eforms_notice(build_eforms_xml()))

    assert identity == NoticeIdentity("ABC-1", "LOT-01", DEFAULT_VERSION)
    assert identity.versioned_key == "ABC-1-LOT-01-v01"


def test_two_versions_give_two_keys() -> None:
    v1 = resolve_identity(parse_eforms_notice(build_eforms_xml(version="01")))
    v2 = resolve_identity(parse_eforms_notice(build_eforms_xml(version="02")))

    assert v1.versioned_key != v2.versioned_key
    assert v1.notice_id == v2.notice_id


def test_is_legacy_key() -> None:
    assert is_legacy_key("ABC-1-LOT-01") is True
    assert is_legacy_key("ABC-1-LOT-01-v01") is False
    assert is_legacy_key("ABC-1-LOT-01-v1.2") is False


def test_is_legacy_key_with_known_identity() -> None:
    identity = NoticeIdentity("ABC-1", "LOT-01", "01")

    assert is_legacy_key("ABC-1-LOT-01", identity) is True
    assert is_legacy_key("ABC-1-LOT-01-v01", identity) is False
