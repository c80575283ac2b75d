# src/veille_marches/models/notice.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Literal, Optional, Tuple

SourceType = Literal["eforms", "ocds"]

# Lot par défaut quand le format ne découpe pas en lots
DEFAULT_LOT_ID = "LOT-0000"

# Titre de repli quand ni la procédure ni le premier lot n'ont d'intitulé
UNTITLED = "Untitled"


class NoticeKind(str, Enum):
    """Nature de l'élément racine du document."""

    CONTRACT_NOTICE = "ContractNotice"
    CONTRACT_AWARD_NOTICE = "ContractAwardNotice"


class NoticeStatus(str, Enum):
    ACTIVE = "Active"
    AMENDMENT = "Amendment"
    AWARDED = "Awarded"


@dataclass(frozen=True)
class StatusHint:
    """Signaux structurels lus par le parser, pas encore un statut."""

    kind: NoticeKind = NoticeKind.CONTRACT_NOTICE
    has_change_marker: bool = False


@dataclass(frozen=True)
class Classification:
    primary_code: Optional[str] = None
    additional_codes: Tuple[str, ...] = ()
    description: Optional[str] = None

    def matches_prefix(self, prefixes: Iterable[str]) -> bool:
        if not self.primary_code:
            return False
        return any(self.primary_code.startswith(p) for p in prefixes)


@dataclass(frozen=True)
class Buyer:
    """
    Pouvoir adjudicateur. Chaque champ est indépendant : on ne complète
    jamais un champ manquant avec une valeur approximative.
    """

    name: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    street_address: Optional[str] = None
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None


@dataclass(frozen=True)
class Financial:
    amount: Decimal
    currency: Optional[str] = None
    # "estimated", "framework_maximum", "lot_estimated", "result_total",
    # "awarded", "tender_value"
    basis: str = "estimated"


@dataclass(frozen=True)
class NoticeDates:
    """Toutes les dates sont des datetime UTC (tz-aware)."""

    publication: datetime
    submission_deadline: Optional[datetime] = None
    contract_start: Optional[datetime] = None
    contract_end: Optional[datetime] = None


@dataclass(frozen=True)
class AwardDetails:
    """
    Bloc spécifique aux releases OCDS d'attribution (Contracts Finder).

    Les champs scalaires viennent de la première attribution ; les
    fournisseurs sont agrégés sur toutes les attributions de la release.
    """

    release_id: Optional[str] = None
    release_date: Optional[datetime] = None

    award_id: Optional[str] = None
    award_status: Optional[str] = None
    award_date: Optional[datetime] = None
    award_date_published: Optional[datetime] = None
    award_value: Optional[Financial] = None
    award_contract_start: Optional[datetime] = None
    award_contract_end: Optional[datetime] = None

    tender_value: Optional[Financial] = None
    procurement_method: Optional[str] = None
    procurement_method_details: Optional[str] = None
    main_procurement_category: Optional[str] = None
    suitable_sme: Optional[bool] = None
    suitable_vcse: Optional[bool] = None

    delivery_region: Optional[str] = None
    delivery_postal_code: Optional[str] = None
    delivery_country: Optional[str] = None

    supplier_names: Tuple[str, ...] = ()
    supplier_ids: Tuple[str, ...] = ()
    supplier_scale: Optional[str] = None

    notice_url: Optional[str] = None


@dataclass(frozen=True)
class ParsedNotice:
    """
    Représentation intermédiaire commune produite par les parsers
    (eForms XML, OCDS JSON). Immuable une fois produite.
    """

    source: SourceType
    source_notice_id: str
    title: str
    dates: NoticeDates
    raw_payload: str

    lot_id: str = DEFAULT_LOT_ID
    notice_type_code: Optional[str] = None
    version_token: Optional[str] = None

    description: Optional[str] = None
    language: Optional[str] = None
    classification: Classification = field(default_factory=Classification)
    buyer: Buyer = field(default_factory=Buyer)
    financial: Optional[Financial] = None

    procedure_type: Optional[str] = None
    contract_nature: Optional[str] = None
    nuts_code: Optional[str] = None

    portal_url: Optional[str] = None
    status_hint: StatusHint = field(default_factory=StatusHint)

    award: Optional[AwardDetails] = None
