# src/veille_marches/services/normalization.py

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup

from veille_marches.errors import UnparseableField
from veille_marches.models.notice import Financial

logger = logging.getLogger(__name__)

# Seuil de plausibilité d'un montant : tout montant <= 1 est considéré
# comme un placeholder ("0", "1") et on passe au candidat suivant.
# Constante de politique, à ajuster si besoin.
MIN_PLAUSIBLE_AMOUNT = Decimal("1")

# Les montants sont stockés en NUMERIC(18, 2) : au-delà, illisible.
MAX_STORABLE_AMOUNT = Decimal("1E16")

_DATE_ONLY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(Z|[+-]\d{2}:\d{2})?$")
_TIME_ONLY_RE = re.compile(r"^(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)(Z|[+-]\d{2}:\d{2})?$")
_LONG_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_URL_IN_TEXT_RE = re.compile(r"https?://[^\s<>\"']+", flags=re.IGNORECASE)
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


# =========================
# Helpers texte
# =========================


def text_or_none(value: Any) -> Optional[str]:
    """Chaîne nettoyée, ou None si vide / absente."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def clean_text(value: Optional[str]) -> Optional[str]:
    """
    Supprime le balisage HTML éventuel et normalise les espaces.

    Certaines descriptions eForms / OCDS contiennent du HTML échappé.
    """
    value = text_or_none(value)
    if value is None:
        return None
    if "<" in value and ">" in value:
        value = BeautifulSoup(value, "html.parser").get_text(" ")
    return " ".join(value.split()) or None


# =========================
# Helpers dates
# =========================


def _to_utc(raw: str) -> datetime:
    s = raw.strip()
    m = _DATE_ONLY_RE.match(s)
    if m:
        s = f"{m.group(1)}T00:00:00{m.group(2) or ''}"
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    s = _LONG_FRACTION_RE.sub(r"\1", s)

    try:
        dt = datetime.fromisoformat(s)
    except ValueError as exc:
        raise UnparseableField("date", raw) from exc

    # Sans offset : on considère que c'est déjà de l'UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_utc_datetime(value: Any, field_name: str = "date") -> Optional[datetime]:
    """
    Parse une date ISO 8601 (date seule ou date+heure) en datetime UTC.

    - offset explicite ('+01:00', 'Z') : il fait foi
    - pas d'offset : la valeur est déjà en UTC
    - valeur illisible : None (le champ est omis, jamais deviné)
    """
    raw = text_or_none(value)
    if raw is None:
        return None
    try:
        return _to_utc(raw)
    except UnparseableField:
        logger.warning("Date illisible pour %s: %r", field_name, raw)
        return None


def combine_date_time(
    date_value: Optional[str],
    time_value: Optional[str],
    field_name: str = "date",
) -> Optional[datetime]:
    """
    eForms sépare date et heure : EndDate='2025-04-01+02:00', EndTime='12:00:00+02:00'.

    L'offset de l'heure est prioritaire, sinon celui de la date.
    """
    date_raw = text_or_none(date_value)
    if date_raw is None:
        return None

    m_date = _DATE_ONLY_RE.match(date_raw)
    time_raw = text_or_none(time_value)
    m_time = _TIME_ONLY_RE.match(time_raw) if time_raw else None

    if not m_date or not m_time:
        if time_raw and not m_time:
            logger.warning("Heure illisible pour %s: %r", field_name, time_raw)
        return parse_utc_datetime(date_raw, field_name)

    offset = m_time.group(2) or m_date.group(2) or ""
    return parse_utc_datetime(f"{m_date.group(1)}T{m_time.group(1)}{offset}", field_name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Montants
# =========================


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Montant -> Decimal, ou None si illisible / non fini.

    Accepte les nombres JSON et les chaînes '50000', '50000.00',
    '1.234.567,89' (format allemand), '1,234,567.89'.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        raw = str(value).replace("\u00A0", "").replace(" ", "").strip()
        if not raw:
            return None
        if "," in raw and "." in raw:
            if raw.rfind(",") > raw.rfind("."):
                raw = raw.replace(".", "").replace(",", ".")
            else:
                raw = raw.replace(",", "")
        elif "," in raw:
            raw = raw.replace(",", ".")
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            logger.debug("Montant illisible: %r", value)
            return None

    if not amount.is_finite():
        return None
    if abs(amount) >= MAX_STORABLE_AMOUNT:
        logger.debug("Montant hors plage stockable: %r", value)
        return None
    return amount


def is_plausible_amount(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount > MIN_PLAUSIBLE_AMOUNT


def normalize_currency(code: Any) -> Optional[str]:
    code = text_or_none(code)
    if code is None:
        return None
    code = code.upper()
    return code if _CURRENCY_RE.match(code) else None


def first_plausible_amount(
    candidates: Iterable[Tuple[Any, Any, str]],
) -> Optional[Financial]:
    """
    Parcourt les candidats (valeur brute, devise, origine) dans l'ordre de
    priorité et renvoie le premier montant plausible.

    Un candidat nul, négatif ou illisible est rejeté AVANT de passer au
    suivant : on ne propage jamais un 0.
    """
    for raw_value, currency, basis in candidates:
        amount = parse_amount(raw_value)
        if is_plausible_amount(amount):
            return Financial(amount=amount, currency=normalize_currency(currency), basis=basis)
        if raw_value is not None:
            logger.debug("Montant %s rejeté (%r), candidat suivant", basis, raw_value)
    return None


# =========================
# URLs
# =========================


def canonical_url(url: Any) -> Optional[str]:
    """
    Forme canonique d'une URL de portail :
    - schéma https ajouté si absent ('www.vergabe.de' -> 'https://www.vergabe.de')
    - schéma et hôte en minuscules, fragment supprimé
    - None si ce n'est pas une URL http(s) exploitable
    """
    url = text_or_none(url)
    if url is None or any(ch.isspace() for ch in url):
        return None
    if url.lower().startswith(("mailto:", "tel:", "javascript:")):
        return None

    if "://" not in url:
        url = "https://" + url.lstrip("/")

    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    host = parts.netloc.lower()
    if scheme not in ("http", "https") or not host:
        return None
    if "." not in host and not host.startswith("localhost"):
        return None

    return urlunsplit((scheme, host, parts.path, parts.query, ""))


def extract_first_url(text: Optional[str]) -> Optional[str]:
    """
    Première URL trouvée dans un texte libre (description d'avis).

    On regarde d'abord les liens <a href>, puis les URLs en clair.
    """
    if not text:
        return None

    if "<" in text and ">" in text:
        soup = BeautifulSoup(text, "html.parser")
        for link in soup.find_all("a", href=True):
            url = canonical_url(link["href"])
            if url and url.startswith("http"):
                return url
        text = soup.get_text(" ")

    m = _URL_IN_TEXT_RE.search(text)
    if not m:
        return None
    return canonical_url(m.group(0).rstrip(".,;:)]"))
