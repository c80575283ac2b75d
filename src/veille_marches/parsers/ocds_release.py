# src/veille_marches/parsers/ocds_release.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

from veille_marches.errors import MalformedDocument, MissingIdentity
from veille_marches.models.notice import (
    DEFAULT_LOT_ID,
    UNTITLED,
    AwardDetails,
    Buyer,
    Classification,
    Financial,
    NoticeDates,
    NoticeKind,
    ParsedNotice,
    StatusHint,
)
from veille_marches.services.normalization import (
    canonical_url,
    clean_text,
    first_plausible_amount,
    is_plausible_amount,
    normalize_currency,
    parse_amount,
    parse_utc_datetime,
    text_or_none,
    utc_now,
)

logger = logging.getLogger(__name__)

RawRelease = Union[Dict[str, Any], bytes, str]


# ==========================
#   Helpers JSON
# ==========================


def _obj(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _objs(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _str(obj: Dict[str, Any], key: str) -> Optional[str]:
    value = obj.get(key)
    if isinstance(value, (dict, list)):
        return None
    return text_or_none(value)


def _bool(obj: Dict[str, Any], key: str) -> Optional[bool]:
    value = obj.get(key)
    return value if isinstance(value, bool) else None


def _has_role(party: Dict[str, Any], role: str) -> bool:
    roles = party.get("roles")
    return isinstance(roles, list) and role in roles


def _value(obj: Dict[str, Any], basis: str) -> Optional[Financial]:
    value = _obj(obj.get("value"))
    amount = parse_amount(value.get("amount"))
    if not is_plausible_amount(amount):
        return None
    return Financial(amount=amount, currency=normalize_currency(value.get("currency")), basis=basis)


def _distinct(values: List[Optional[str]]) -> tuple:
    seen: List[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return tuple(seen)


def load_release(raw: RawRelease, document_id: Optional[str] = None) -> Dict[str, Any]:
    """Accepte un dict déjà décodé, ou le JSON brut (bytes / str)."""
    if isinstance(raw, dict):
        return raw
    try:
        release = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as exc:
        raise MalformedDocument(f"JSON invalide: {exc!r}", document_id) from exc
    if not isinstance(release, dict):
        raise MalformedDocument("Une release OCDS doit être un objet JSON", document_id)
    return release


# ==========================
#   Blocs de la release
# ==========================


def _buyer_party(release: Dict[str, Any]) -> Dict[str, Any]:
    """
    buyer.id résolu dans `parties`, sinon première partie de rôle 'buyer'.
    Dict vide si rien ne correspond.
    """
    parties = _objs(release.get("parties"))
    buyer_id = _str(_obj(release.get("buyer")), "id")

    if buyer_id:
        for party in parties:
            if _str(party, "id") == buyer_id:
                return party
    for party in parties:
        if _has_role(party, "buyer"):
            return party
    return {}


def _buyer(release: Dict[str, Any]) -> Buyer:
    party = _buyer_party(release)
    address = _obj(party.get("address"))
    contact = _obj(party.get("contactPoint"))
    identifier = _obj(party.get("identifier"))

    email = _str(contact, "email")
    return Buyer(
        name=_str(party, "name") or _str(_obj(release.get("buyer")), "name"),
        website=canonical_url(_str(contact, "url") or _str(identifier, "uri")),
        email=email if email and "@" in email else None,
        phone=_str(contact, "telephone"),
        city=_str(address, "locality"),
        country=_str(address, "countryName"),
        street_address=_str(address, "streetAddress"),
        postal_code=_str(address, "postalCode"),
        contact_name=_str(contact, "name"),
    )


def _notice_url(award: Dict[str, Any]) -> Optional[str]:
    documents = _objs(award.get("documents"))
    for doc in documents:
        if _str(doc, "documentType") == "awardNotice":
            return canonical_url(_str(doc, "url"))
    if documents:
        return canonical_url(_str(documents[0], "url"))
    return None


def _award_details(release: Dict[str, Any], tender: Dict[str, Any]) -> AwardDetails:
    awards = _objs(release.get("awards"))
    award = awards[0] if awards else {}
    award_period = _obj(award.get("contractPeriod"))

    suppliers = [s for a in awards for s in _objs(a.get("suppliers"))]

    supplier_scale = None
    for party in _objs(release.get("parties")):
        if _has_role(party, "supplier"):
            supplier_scale = _str(_obj(party.get("details")), "scale")
            break

    items = _objs(tender.get("items"))
    addresses = _objs(items[0].get("deliveryAddresses")) if items else []
    delivery = addresses[0] if addresses else {}
    suitability = _obj(tender.get("suitability"))

    return AwardDetails(
        release_id=_str(release, "id"),
        release_date=parse_utc_datetime(release.get("date"), "release_date"),
        award_id=_str(award, "id"),
        award_status=_str(award, "status"),
        award_date=parse_utc_datetime(award.get("date"), "award_date"),
        award_date_published=parse_utc_datetime(award.get("datePublished"), "award_date_published"),
        award_value=_value(award, "awarded"),
        award_contract_start=parse_utc_datetime(award_period.get("startDate"), "award_contract_start"),
        award_contract_end=parse_utc_datetime(award_period.get("endDate"), "award_contract_end"),
        tender_value=_value(tender, "tender_value"),
        procurement_method=_str(tender, "procurementMethod"),
        procurement_method_details=_str(tender, "procurementMethodDetails"),
        main_procurement_category=_str(tender, "mainProcurementCategory"),
        suitable_sme=_bool(suitability, "sme"),
        suitable_vcse=_bool(suitability, "vcse"),
        delivery_region=_str(delivery, "region"),
        delivery_postal_code=_str(delivery, "postalCode"),
        delivery_country=_str(delivery, "countryName"),
        supplier_names=_distinct([_str(s, "name") for s in suppliers]),
        supplier_ids=_distinct([_str(s, "id") for s in suppliers]),
        supplier_scale=supplier_scale,
        notice_url=_notice_url(award),
    )


# ==========================
#   Parser principal
# ==========================


def parse_ocds_release(raw: RawRelease, document_id: Optional[str] = None) -> ParsedNotice:
    """
    Parse une release OCDS (Contracts Finder, stage 'award') en ParsedNotice.

    - acheteur : buyer.id dans `parties`, puis rôle 'buyer', puis buyer.name
    - attribution principale : la première ; fournisseurs agrégés sur toutes
    - montant : valeur attribuée, sinon valeur du marché
    """
    release = load_release(raw, document_id)

    ocid = _str(release, "ocid")
    if not ocid:
        raise MissingIdentity("ocid absent de la release", document_id or _str(release, "id"))

    tender = _obj(release.get("tender"))
    classification = _obj(tender.get("classification"))
    primary_cpv = _str(classification, "id")
    additional = _distinct(
        [_str(c, "id") for c in _objs(tender.get("additionalClassifications"))]
    )

    award = _award_details(release, tender)

    publication = parse_utc_datetime(release.get("date"), "publication")
    if publication is None:
        logger.warning("Release %s : date absente, date d'ingestion utilisée", ocid)
        publication = utc_now()

    tender_period = _obj(tender.get("tenderPeriod"))
    contract_period = _obj(tender.get("contractPeriod"))

    financial = first_plausible_amount(
        [
            (v.amount, v.currency, v.basis) if v else (None, None, basis)
            for v, basis in ((award.award_value, "awarded"), (award.tender_value, "tender_value"))
        ]
    )

    kind = NoticeKind.CONTRACT_AWARD_NOTICE if _objs(release.get("awards")) else NoticeKind.CONTRACT_NOTICE

    return ParsedNotice(
        source="ocds",
        source_notice_id=ocid,
        lot_id=DEFAULT_LOT_ID,
        title=_str(tender, "title") or UNTITLED,
        description=clean_text(_str(tender, "description")),
        language=_str(release, "language"),
        classification=Classification(
            primary_code=primary_cpv,
            additional_codes=tuple(c for c in additional if c != primary_cpv),
            description=_str(classification, "description"),
        ),
        buyer=_buyer(release),
        financial=financial,
        procedure_type=award.procurement_method,
        contract_nature=award.main_procurement_category,
        nuts_code=None,
        dates=NoticeDates(
            publication=publication,
            submission_deadline=parse_utc_datetime(tender_period.get("endDate"), "submission_deadline"),
            contract_start=parse_utc_datetime(contract_period.get("startDate"), "contract_start"),
            contract_end=parse_utc_datetime(contract_period.get("endDate"), "contract_end"),
        ),
        portal_url=award.notice_url,
        raw_payload=json.dumps(release, ensure_ascii=False),
        status_hint=StatusHint(kind=kind),
        award=award,
    )
