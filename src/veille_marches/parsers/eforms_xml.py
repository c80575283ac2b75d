# src/veille_marches/parsers/eforms_xml.py

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from io import BytesIO
from typing import Dict, Iterable, List, Optional, Tuple, Union

from veille_marches.errors import MalformedDocument, MissingIdentity
from veille_marches.models.notice import (
    DEFAULT_LOT_ID,
    UNTITLED,
    Buyer,
    Classification,
    NoticeDates,
    NoticeKind,
    ParsedNotice,
    StatusHint,
)
from veille_marches.services.normalization import (
    canonical_url,
    clean_text,
    combine_date_time,
    extract_first_url,
    first_plausible_amount,
    text_or_none,
    utc_now,
)

logger = logging.getLogger(__name__)

# URIs par défaut, utilisées seulement si le document ne déclare pas le préfixe
DEFAULT_NAMESPACES: Dict[str, str] = {
    "cac": "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2",
    "cbc": "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2",
    "ext": "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2",
    "efac": "http://data.europa.eu/p27/eforms-ubl-extension-aggregate-components/1",
    "efbc": "http://data.europa.eu/p27/eforms-ubl-extension-basic-components/1",
    "efext": "http://data.europa.eu/p27/eforms-ubl-extensions/1",
}

ROOT_KINDS: Dict[str, NoticeKind] = {
    "ContractNotice": NoticeKind.CONTRACT_NOTICE,
    "ContractAwardNotice": NoticeKind.CONTRACT_AWARD_NOTICE,
}

_PREFIX_RE = re.compile(r"[A-Za-z_][\w.-]*:(?=[A-Za-z_])")

_DOCUMENT_URI_PATH = (
    "cac:TenderingTerms/cac:CallForTendersDocumentReference"
    "/cac:Attachment/cac:ExternalReference/cbc:URI"
)


# ==========================
#   Lecture du document
# ==========================


class EformsDocument:
    """
    Document XML + table préfixe -> URI construite une fois par document.

    Les éditeurs ne lient pas toujours les mêmes préfixes aux mêmes URIs :
    on part des déclarations du document et on complète avec
    DEFAULT_NAMESPACES pour les préfixes qu'il ne déclare pas.
    Chaque recherche retente aussi le nom non qualifié (anciens documents
    sans préfixes).
    """

    def __init__(self, root: ET.Element, declared: Dict[str, str]):
        self.root = root
        self.namespaces: Dict[str, str] = dict(DEFAULT_NAMESPACES)
        self.namespaces.update({p: uri for p, uri in declared.items() if p})

    @classmethod
    def from_bytes(cls, raw: bytes, document_id: Optional[str] = None) -> "EformsDocument":
        declared: Dict[str, str] = {}
        root: Optional[ET.Element] = None
        try:
            for event, item in ET.iterparse(BytesIO(raw), events=("start-ns", "start")):
                if event == "start-ns":
                    prefix, uri = item
                    declared.setdefault(prefix, uri)
                elif root is None:
                    root = item
        except ET.ParseError as exc:
            raise MalformedDocument(f"XML invalide: {exc}", document_id) from exc
        except (LookupError, ValueError, RecursionError) as exc:
            # encodage déclaré inconnu, imbrication trop profonde...
            raise MalformedDocument(f"XML illisible: {exc!r}", document_id) from exc

        if root is None:
            raise MalformedDocument("Document XML vide", document_id)
        return cls(root, declared)

    @property
    def root_name(self) -> str:
        return self.root.tag.rsplit("}", 1)[-1]

    def find(self, elem: Optional[ET.Element], path: str) -> Optional[ET.Element]:
        if elem is None:
            return None
        found = elem.find(path, self.namespaces)
        if found is None:
            found = elem.find(_PREFIX_RE.sub("", path))
        return found

    def findall(self, elem: Optional[ET.Element], path: str) -> List[ET.Element]:
        if elem is None:
            return []
        found = elem.findall(path, self.namespaces)
        return found or elem.findall(_PREFIX_RE.sub("", path))

    def text(self, elem: Optional[ET.Element], path: str) -> Optional[str]:
        node = self.find(elem, path)
        if node is None:
            return None
        return text_or_none("".join(node.itertext()))

    def localized_text(
        self,
        elem: Optional[ET.Element],
        path: str,
        language: Optional[str],
    ) -> Optional[str]:
        """Texte dans la langue de l'avis si plusieurs traductions coexistent."""
        nodes = self.findall(elem, path)
        if not nodes:
            return None
        if language:
            for node in nodes:
                if (node.get("languageID") or "").upper() == language.upper():
                    value = text_or_none("".join(node.itertext()))
                    if value:
                        return value
        for node in nodes:
            value = text_or_none("".join(node.itertext()))
            if value:
                return value
        return None


# ==========================
#   Statut (signaux structurels)
# ==========================


def _status_hint(doc: EformsDocument) -> StatusHint:
    kind = ROOT_KINDS.get(doc.root_name, NoticeKind.CONTRACT_NOTICE)
    marker = doc.find(doc.root, ".//efbc:ChangedNoticeIdentifier")
    return StatusHint(kind=kind, has_change_marker=marker is not None)


def read_status_hint(raw: bytes) -> StatusHint:
    """Signaux de statut seuls, sans parser le reste de l'avis."""
    return _status_hint(EformsDocument.from_bytes(raw))


# ==========================
#   Extraction des blocs
# ==========================


def _first_lot(doc: EformsDocument) -> Optional[ET.Element]:
    """
    Premier lot « réel ». Les groupes de lots (schemeName='LotsGroup')
    réutilisent le même élément et sont ignorés s'il existe un vrai lot.
    """
    lots = doc.findall(doc.root, "cac:ProcurementProjectLot")
    for lot in lots:
        lot_id = doc.find(lot, "cbc:ID")
        if lot_id is None or lot_id.get("schemeName") != "LotsGroup":
            return lot
    return lots[0] if lots else None


def _cpv_codes(doc: EformsDocument, elem: Optional[ET.Element], path: str) -> List[str]:
    codes: List[str] = []
    for node in doc.findall(elem, path):
        list_name = node.get("listName")
        if list_name and list_name.lower() != "cpv":
            continue
        code = text_or_none(node.text)
        if code:
            codes.append(code)
    return codes


def _classification(
    doc: EformsDocument,
    procedure: Optional[ET.Element],
    lots: Iterable[ET.Element],
    first_lot_project: Optional[ET.Element],
) -> Classification:
    main_path = "cac:MainCommodityClassification/cbc:ItemClassificationCode"
    extra_path = "cac:AdditionalCommodityClassification/cbc:ItemClassificationCode"

    primary_candidates = _cpv_codes(doc, procedure, main_path) or _cpv_codes(
        doc, first_lot_project, main_path
    )
    primary = primary_candidates[0] if primary_candidates else None

    others: List[str] = _cpv_codes(doc, procedure, extra_path)
    for lot in lots:
        lot_project = doc.find(lot, "cac:ProcurementProject")
        others.extend(_cpv_codes(doc, lot_project, main_path))
        others.extend(_cpv_codes(doc, lot_project, extra_path))

    additional: List[str] = []
    for code in others:
        if code != primary and code not in additional:
            additional.append(code)

    return Classification(primary_code=primary, additional_codes=tuple(additional))


def _organizations(doc: EformsDocument) -> Dict[str, ET.Element]:
    """Table ORG-xxxx -> efac:Company, déclarée dans l'extension eForms."""
    companies: Dict[str, ET.Element] = {}
    for org in doc.findall(doc.root, ".//efac:Organizations/efac:Organization"):
        company = doc.find(org, "efac:Company")
        org_id = doc.text(company, "cac:PartyIdentification/cbc:ID")
        if company is not None and org_id:
            companies.setdefault(org_id, company)
    return companies


def _buyer(doc: EformsDocument) -> Buyer:
    party = doc.find(doc.root, "cac:ContractingParty/cac:Party")
    reference = doc.text(party, "cac:PartyIdentification/cbc:ID")

    company = None
    if reference:
        company = _organizations(doc).get(reference)
        if company is None:
            logger.debug("Organisation %s non trouvée dans efac:Organizations", reference)

    # L'organisation référencée d'abord, puis ce qui est écrit sur la Party
    sources = [e for e in (company, party) if e is not None]

    def first(path: str) -> Optional[str]:
        for elem in sources:
            value = doc.text(elem, path)
            if value:
                return value
        return None

    email = first("cac:Contact/cbc:ElectronicMail")
    return Buyer(
        name=first("cac:PartyName/cbc:Name"),
        website=canonical_url(first("cbc:WebsiteURI")),
        email=email if email and "@" in email else None,
        phone=first("cac:Contact/cbc:Telephone"),
        city=first("cac:PostalAddress/cbc:CityName"),
        country=first("cac:PostalAddress/cac:Country/cbc:IdentificationCode"),
        street_address=first("cac:PostalAddress/cbc:StreetName"),
        postal_code=first("cac:PostalAddress/cbc:PostalZone"),
        contact_name=first("cac:Contact/cbc:Name"),
    )


def _amount_candidate(
    doc: EformsDocument,
    elem: Optional[ET.Element],
    path: str,
    basis: str,
) -> Tuple[Optional[str], Optional[str], str]:
    node = doc.find(elem, path)
    if node is None:
        return None, None, basis
    return text_or_none(node.text), node.get("currencyID"), basis


def _financial(
    doc: EformsDocument,
    procedure: Optional[ET.Element],
    first_lot_project: Optional[ET.Element],
):
    """
    Ordre de priorité :
      1. montant estimé global de la procédure
      2. montant maximum de l'accord-cadre (procédure, puis lot)
      3. montant estimé du premier lot
      4. montant total du résultat (avis d'attribution)
    """
    estimated_path = "cac:RequestedTenderTotal/cbc:EstimatedOverallContractAmount"
    return first_plausible_amount(
        [
            _amount_candidate(doc, procedure, estimated_path, "estimated"),
            _amount_candidate(doc, procedure, ".//efbc:FrameworkMaximumAmount", "framework_maximum"),
            _amount_candidate(
                doc, first_lot_project, ".//efbc:FrameworkMaximumAmount", "framework_maximum"
            ),
            _amount_candidate(doc, first_lot_project, estimated_path, "lot_estimated"),
            _amount_candidate(doc, doc.root, ".//efac:NoticeResult/cbc:TotalAmount", "result_total"),
        ]
    )


def _planned_period(
    doc: EformsDocument,
    first_lot_project: Optional[ET.Element],
    procedure: Optional[ET.Element],
):
    for project in (first_lot_project, procedure):
        period = doc.find(project, "cac:PlannedPeriod")
        if period is None:
            continue
        start = combine_date_time(doc.text(period, "cbc:StartDate"), None, "contract_start")
        end = combine_date_time(doc.text(period, "cbc:EndDate"), None, "contract_end")
        if start or end:
            return start, end
    return None, None


# ==========================
#   Parser principal
# ==========================


def parse_eforms_notice(
    raw: Union[bytes, str],
    document_id: Optional[str] = None,
) -> ParsedNotice:
    """
    Parse un avis eForms (UBL 2.3 + extensions efac/efbc) en ParsedNotice.

    Règles de portée :
      - champs de procédure (titre, description, CPV, type de procédure,
        nature du marché, NUTS) : ProcurementProject / TenderingProcess de
        niveau racine, le premier lot en repli ;
      - champs de lot (identifiant, date limite, période prévue, lien vers
        les documents) : premier ProcurementProjectLot.

    Lève MissingIdentity si cbc:ID est absent, MalformedDocument si le XML
    est illisible. Tout autre champ manquant est simplement omis.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8")

    doc = EformsDocument.from_bytes(raw, document_id)
    root = doc.root

    notice_id = doc.text(root, "cbc:ID")
    if not notice_id:
        raise MissingIdentity("cbc:ID absent de l'avis", document_id)

    language = doc.text(root, "cbc:NoticeLanguageCode")

    procedure = doc.find(root, "cac:ProcurementProject")
    lots = doc.findall(root, "cac:ProcurementProjectLot")
    first_lot = _first_lot(doc)
    first_lot_project = doc.find(first_lot, "cac:ProcurementProject")

    # --- Titre / description ---
    title = (
        doc.localized_text(procedure, "cbc:Name", language)
        or doc.localized_text(first_lot_project, "cbc:Name", language)
    )
    if not title:
        logger.warning("Avis %s sans intitulé", notice_id)
    raw_description = doc.localized_text(procedure, "cbc:Description", language) or (
        doc.localized_text(first_lot_project, "cbc:Description", language)
    )

    # --- Dates ---
    publication = combine_date_time(
        doc.text(root, "cbc:IssueDate"), doc.text(root, "cbc:IssueTime"), "publication"
    )
    if publication is None:
        logger.warning("Avis %s : date de publication absente, date d'ingestion utilisée", notice_id)
        publication = utc_now()

    deadline_period = doc.find(
        first_lot, "cac:TenderingProcess/cac:TenderSubmissionDeadlinePeriod"
    )
    submission_deadline = combine_date_time(
        doc.text(deadline_period, "cbc:EndDate"),
        doc.text(deadline_period, "cbc:EndTime"),
        "submission_deadline",
    )
    contract_start, contract_end = _planned_period(doc, first_lot_project, procedure)

    # --- Acheteur / portail ---
    buyer = _buyer(doc)
    portal_url = (
        canonical_url(doc.text(first_lot, _DOCUMENT_URI_PATH))
        or canonical_url(doc.text(root, _DOCUMENT_URI_PATH))
        or canonical_url(doc.text(root, "cac:ContractingParty/cbc:BuyerProfileURI"))
        or buyer.website
        or extract_first_url(raw_description)
    )

    return ParsedNotice(
        source="eforms",
        source_notice_id=notice_id,
        lot_id=doc.text(first_lot, "cbc:ID") or DEFAULT_LOT_ID,
        notice_type_code=doc.text(root, "cbc:NoticeTypeCode"),
        version_token=doc.text(root, "cbc:VersionID"),
        title=title or UNTITLED,
        description=clean_text(raw_description),
        language=language,
        classification=_classification(doc, procedure, lots, first_lot_project),
        buyer=buyer,
        financial=_financial(doc, procedure, first_lot_project),
        procedure_type=doc.text(root, "cac:TenderingProcess/cbc:ProcedureCode"),
        contract_nature=(
            doc.text(procedure, "cbc:ProcurementTypeCode")
            or doc.text(first_lot_project, "cbc:ProcurementTypeCode")
        ),
        nuts_code=(
            doc.text(procedure, "cac:RealizedLocation/cac:Address/cbc:CountrySubentityCode")
            or doc.text(first_lot_project, "cac:RealizedLocation/cac:Address/cbc:CountrySubentityCode")
        ),
        dates=NoticeDates(
            publication=publication,
            submission_deadline=submission_deadline,
            contract_start=contract_start,
            contract_end=contract_end,
        ),
        portal_url=portal_url,
        raw_payload=raw.decode("utf-8", errors="replace"),
        status_hint=_status_hint(doc),
    )
