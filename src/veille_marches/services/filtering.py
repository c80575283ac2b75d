# src/veille_marches/services/filtering.py

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Iterable, Optional, Sequence

from veille_marches.config import DEFAULT_CPV_PREFIXES
from veille_marches.models.notice import ParsedNotice

# Les avis au-dessus des seuils UE sont nommés <GUID>[-<version>].xml ;
# les autres fichiers de l'export (avis nationaux sous les seuils) sont ignorés.
_GUID_FILENAME_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
    r"(?:[-_][0-9a-z]+)?\.xml$",
    flags=re.IGNORECASE,
)


# ==========================
# Filtre sur le nom de fichier
# ==========================

def is_guid_filename(filename: str) -> bool:
    """
    Vérifie que le nom de l'entrée d'archive est de la forme GUID.

    Seul le nom de base compte : 'export/2025-03-01/<guid>.xml' est accepté.
    """
    if not filename:
        return False
    basename = PurePosixPath(filename.replace("\\", "/")).name
    return bool(_GUID_FILENAME_RE.match(basename))


# ==========================
# Filtre métier (CPV + mots-clés)
# ==========================

def has_excluded_keyword(
    notice: ParsedNotice,
    exclusion_keywords: Iterable[str],
) -> Optional[str]:
    """
    Renvoie le premier mot-clé d'exclusion trouvé dans le titre ou la
    description (insensible à la casse), ou None.
    """
    haystack = f"{notice.title}\n{notice.description or ''}".lower()
    for keyword in exclusion_keywords:
        keyword = keyword.strip()
        if keyword and keyword.lower() in haystack:
            return keyword
    return None


def is_notice_in_domain(
    notice: ParsedNotice,
    cpv_prefixes: Sequence[str] = DEFAULT_CPV_PREFIXES,
    exclusion_keywords: Iterable[str] = (),
) -> bool:
    """
    L'avis est gardé si :

    1. son code CPV principal commence par un des préfixes suivis
       (liste vide = pas de filtre CPV) ;
    2. aucun mot-clé d'exclusion n'apparaît dans le titre ou la description.

    Un avis sans code CPV est rejeté dès qu'un filtre CPV est actif.
    """
    if cpv_prefixes and not notice.classification.matches_prefix(cpv_prefixes):
        return False

    return has_excluded_keyword(notice, exclusion_keywords) is None
