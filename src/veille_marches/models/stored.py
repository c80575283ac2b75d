# src/veille_marches/models/stored.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from veille_marches.models.analysis import NoticeAnalysis
from veille_marches.models.notice import AwardDetails, NoticeStatus, ParsedNotice


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class StoredNotice:
    """
    Projection persistée d'un ParsedNotice (table `notices`).

    Une ligne par version d'un lot d'un avis ; `created_at` est fixé par
    le store au premier insert et jamais modifié ensuite.
    """

    versioned_key: str
    notice_id: str
    lot_id: str
    version: str
    status: NoticeStatus

    source: str
    notice_type_code: Optional[str]
    title: str
    description: Optional[str]
    language: Optional[str]

    cpv_code: Optional[str]
    additional_cpv_codes: Tuple[str, ...]
    nuts_code: Optional[str]
    contract_nature: Optional[str]
    procedure_type: Optional[str]

    buyer_name: Optional[str]
    buyer_website: Optional[str]
    buyer_email: Optional[str]
    buyer_phone: Optional[str]
    buyer_city: Optional[str]
    buyer_country: Optional[str]

    value_amount: Optional[Decimal]
    value_currency: Optional[str]

    publication_date: datetime
    submission_deadline: Optional[datetime]
    contract_start: Optional[datetime]
    contract_end: Optional[datetime]

    portal_url: Optional[str]
    raw_payload: str

    # Enrichissement (facultatif)
    buyer_name_en: Optional[str] = None
    title_en: Optional[str] = None
    summary_en: Optional[str] = None
    fatal_flaws: Tuple[str, ...] = ()
    tech_stack: Tuple[str, ...] = ()
    suitability_score: Optional[float] = None

    created_at: Optional[datetime] = None

    @classmethod
    def from_parsed(
        cls,
        parsed: ParsedNotice,
        *,
        notice_id: str,
        version: str,
        versioned_key: str,
        status: NoticeStatus,
        analysis: Optional[NoticeAnalysis] = None,
    ) -> "StoredNotice":
        financial = parsed.financial
        stored = cls(
            versioned_key=versioned_key,
            notice_id=notice_id,
            lot_id=parsed.lot_id,
            version=version,
            status=status,
            source=parsed.source,
            notice_type_code=parsed.notice_type_code,
            title=parsed.title,
            description=parsed.description,
            language=parsed.language,
            cpv_code=parsed.classification.primary_code,
            additional_cpv_codes=parsed.classification.additional_codes,
            nuts_code=parsed.nuts_code,
            contract_nature=parsed.contract_nature,
            procedure_type=parsed.procedure_type,
            buyer_name=parsed.buyer.name,
            buyer_website=parsed.buyer.website,
            buyer_email=parsed.buyer.email,
            buyer_phone=parsed.buyer.phone,
            buyer_city=parsed.buyer.city,
            buyer_country=parsed.buyer.country,
            value_amount=financial.amount if financial else None,
            value_currency=financial.currency if financial else None,
            publication_date=parsed.dates.publication,
            submission_deadline=parsed.dates.submission_deadline,
            contract_start=parsed.dates.contract_start,
            contract_end=parsed.dates.contract_end,
            portal_url=parsed.portal_url,
            raw_payload=parsed.raw_payload,
        )
        if analysis is not None:
            stored = stored.with_analysis(analysis)
        return stored

    def with_analysis(self, analysis: NoticeAnalysis) -> "StoredNotice":
        return replace(
            self,
            buyer_name_en=analysis.buyer_name_en or self.buyer_name_en,
            title_en=analysis.title_en or self.title_en,
            summary_en="\n".join(analysis.summary) or self.summary_en,
            fatal_flaws=analysis.fatal_flaws or self.fatal_flaws,
            tech_stack=analysis.tech_stack or self.tech_stack,
            suitability_score=(
                analysis.suitability_score
                if analysis.suitability_score is not None
                else self.suitability_score
            ),
        )


@dataclass(frozen=True)
class AwardReleaseRecord:
    """
    Projection persistée d'une release OCDS d'attribution (table
    `award_releases`), une ligne par OCID.
    """

    ocid: str
    title: str
    raw_json: str
    release_id: Optional[str] = None
    release_date: Optional[datetime] = None

    description: Optional[str] = None
    cpv_code: Optional[str] = None
    cpv_description: Optional[str] = None
    additional_cpv_codes: Tuple[str, ...] = ()
    procurement_method: Optional[str] = None
    procurement_method_details: Optional[str] = None
    main_procurement_category: Optional[str] = None

    tender_value_amount: Optional[Decimal] = None
    tender_value_currency: Optional[str] = None
    suitable_sme: Optional[bool] = None
    suitable_vcse: Optional[bool] = None
    tender_deadline: Optional[datetime] = None
    tender_contract_start: Optional[datetime] = None
    tender_contract_end: Optional[datetime] = None

    delivery_region: Optional[str] = None
    delivery_postal_code: Optional[str] = None
    delivery_country: Optional[str] = None

    buyer_name: Optional[str] = None
    buyer_street_address: Optional[str] = None
    buyer_locality: Optional[str] = None
    buyer_postal_code: Optional[str] = None
    buyer_country: Optional[str] = None
    buyer_contact_name: Optional[str] = None
    buyer_contact_email: Optional[str] = None
    buyer_contact_phone: Optional[str] = None

    award_id: Optional[str] = None
    award_status: Optional[str] = None
    award_date: Optional[datetime] = None
    award_date_published: Optional[datetime] = None
    award_value_amount: Optional[Decimal] = None
    award_value_currency: Optional[str] = None
    award_contract_start: Optional[datetime] = None
    award_contract_end: Optional[datetime] = None

    supplier_names: Tuple[str, ...] = ()
    supplier_ids: Tuple[str, ...] = ()
    supplier_scale: Optional[str] = None
    notice_url: Optional[str] = None

    created_at: Optional[datetime] = None

    @classmethod
    def from_parsed(cls, parsed: ParsedNotice) -> "AwardReleaseRecord":
        award = parsed.award or AwardDetails()
        buyer = parsed.buyer
        tender_value = award.tender_value
        award_value = award.award_value
        return cls(
            ocid=parsed.source_notice_id,
            title=parsed.title,
            raw_json=parsed.raw_payload,
            release_id=award.release_id,
            release_date=award.release_date,
            description=parsed.description,
            cpv_code=parsed.classification.primary_code,
            cpv_description=parsed.classification.description,
            additional_cpv_codes=parsed.classification.additional_codes,
            procurement_method=award.procurement_method,
            procurement_method_details=award.procurement_method_details,
            main_procurement_category=award.main_procurement_category,
            tender_value_amount=tender_value.amount if tender_value else None,
            tender_value_currency=tender_value.currency if tender_value else None,
            suitable_sme=award.suitable_sme,
            suitable_vcse=award.suitable_vcse,
            tender_deadline=parsed.dates.submission_deadline,
            tender_contract_start=parsed.dates.contract_start,
            tender_contract_end=parsed.dates.contract_end,
            delivery_region=award.delivery_region,
            delivery_postal_code=award.delivery_postal_code,
            delivery_country=award.delivery_country,
            buyer_name=buyer.name,
            buyer_street_address=buyer.street_address,
            buyer_locality=buyer.city,
            buyer_postal_code=buyer.postal_code,
            buyer_country=buyer.country,
            buyer_contact_name=buyer.contact_name,
            buyer_contact_email=buyer.email,
            buyer_contact_phone=buyer.phone,
            award_id=award.award_id,
            award_status=award.award_status,
            award_date=award.award_date,
            award_date_published=award.award_date_published,
            award_value_amount=award_value.amount if award_value else None,
            award_value_currency=award_value.currency if award_value else None,
            award_contract_start=award.award_contract_start,
            award_contract_end=award.award_contract_end,
            supplier_names=award.supplier_names,
            supplier_ids=award.supplier_ids,
            supplier_scale=award.supplier_scale,
            notice_url=award.notice_url,
        )


# =====================================================
#                   RAPPORT DE RUN
# =====================================================

@dataclass(frozen=True)
class DocumentResult:
    """Issue du traitement d'un seul document / release."""

    document_id: str
    outcome: Optional[UpsertOutcome] = None
    skipped: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class RunReport:
    """
    Compteurs d'un run. Immuable : on l'accumule par fold (`absorb`),
    jamais par mutation.
    """

    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errored: int = 0
    errors: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def absorb(self, result: DocumentResult) -> "RunReport":
        report = replace(self, fetched=self.fetched + 1)
        if result.error is not None:
            return report.with_error(result.document_id, result.error)
        if result.skipped:
            return replace(report, skipped=report.skipped + 1)
        if result.outcome is UpsertOutcome.INSERTED:
            return replace(report, inserted=report.inserted + 1)
        if result.outcome is UpsertOutcome.UPDATED:
            return replace(report, updated=report.updated + 1)
        return replace(report, unchanged=report.unchanged + 1)

    def with_error(self, document_id: str, message: str) -> "RunReport":
        return replace(
            self,
            errored=self.errored + 1,
            errors=self.errors + ((document_id, message),),
        )

    def as_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errored": self.errored,
            "errors": [{"document": d, "message": m} for d, m in self.errors],
        }
