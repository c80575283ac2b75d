# src/veille_marches/services/identity.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from veille_marches.models.notice import ParsedNotice
from veille_marches.services.normalization import text_or_none

# Version attribuée quand le document n'en déclare pas
DEFAULT_VERSION = "01"

_VERSION_SUFFIX_RE = re.compile(r"-v[0-9A-Za-z.]+$")


@dataclass(frozen=True)
class NoticeIdentity:
    notice_id: str
    lot_id: str
    version: str = DEFAULT_VERSION

    @property
    def versioned_key(self) -> str:
        return versioned_key(self.notice_id, self.lot_id, self.version)

    @property
    def legacy_key(self) -> str:
        """Ancien format de clé, sans suffixe de version."""
        return f"{self.notice_id}-{self.lot_id}"


def normalize_version(token: Optional[str]) -> str:
    return text_or_none(token) or DEFAULT_VERSION


def versioned_key(notice_id: str, lot_id: str, version: Optional[str] = None) -> str:
    return f"{notice_id}-{lot_id}-v{normalize_version(version)}"


def resolve_identity(parsed: ParsedNotice) -> NoticeIdentity:
    return NoticeIdentity(
        notice_id=parsed.source_notice_id,
        lot_id=parsed.lot_id,
        version=normalize_version(parsed.version_token),
    )


def is_legacy_key(key: str, identity: Optional[NoticeIdentity] = None) -> bool:
    """
    Une clé est « ancienne » si elle n'a pas de suffixe -v<version>.
    Si l'identité est connue, on compare exactement à `{notice_id}-{lot_id}`.
    """
    if identity is not None:
        return key == identity.legacy_key
    return not _VERSION_SUFFIX_RE.search(key)
