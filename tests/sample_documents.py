"""Constructeurs de documents de test (avis eForms XML, releases OCDS)."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

NOTICE_GUID = "3fa85f64-5717-4562-b3fc-2c963f66afa6"

CAC_URI = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_URI = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT_URI = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
EFAC_URI = "http://data.europa.eu/p27/eforms-ubl-extension-aggregate-components/1"
EFBC_URI = "http://data.europa.eu/p27/eforms-ubl-extension-basic-components/1"
EFEXT_URI = "http://data.europa.eu/p27/eforms-ubl-extensions/1"


def build_eforms_xml(
    notice_id: Optional[str] = "ABC-1",
    lot_id: Optional[str] = "LOT-01",
    version: Optional[str] = None,
    cpv: str = "72212000",
    additional_cpvs: tuple = ("72260000",),
    root: str = "ContractNotice",
    changed_notice: Optional[str] = None,
    estimated_amount: Optional[str] = None,
    framework_maximum: Optional[str] = None,
    result_total: Optional[str] = None,
    currency: str = "EUR",
    title: Optional[str] = "Entwicklung einer Fachanwendung",
    lot_title: str = "Los 1: Softwareentwicklung",
    description: str = "Entwicklung und Pflege einer webbasierten Fachanwendung.",
    buyer_name: str = "Stadt Musterstadt",
    document_uri: Optional[str] = "https://vergabe.musterstadt.de/notice/ABC-1",
    deadline_date: str = "2025-04-01+02:00",
    deadline_time: str = "12:00:00+02:00",
    issue_date: Optional[str] = "2025-03-01+01:00",
    issue_time: Optional[str] = "10:00:00+01:00",
    cac: str = "cac",
    cbc: str = "cbc",
) -> bytes:
    """
    Avis eForms minimal mais réaliste. Les préfixes cac/cbc sont
    paramétrables pour tester la résolution dynamique des namespaces.
    """
    root_uri = f"urn:oasis:names:specification:ubl:schema:xsd:{root}-2"

    changes = ""
    if changed_notice:
        changes = (
            "<efac:Changes>"
            f"<efbc:ChangedNoticeIdentifier>{changed_notice}</efbc:ChangedNoticeIdentifier>"
            "</efac:Changes>"
        )

    result = ""
    if result_total:
        result = (
            "<efac:NoticeResult>"
            f'<{cbc}:TotalAmount currencyID="{currency}">{result_total}</{cbc}:TotalAmount>'
            "</efac:NoticeResult>"
        )

    requested_total = ""
    if estimated_amount is not None or framework_maximum is not None:
        parts = []
        if estimated_amount is not None:
            parts.append(
                f'<{cbc}:EstimatedOverallContractAmount currencyID="{currency}">'
                f"{estimated_amount}</{cbc}:EstimatedOverallContractAmount>"
            )
        if framework_maximum is not None:
            parts.append(
                "<ext:UBLExtensions><ext:UBLExtension><ext:ExtensionContent>"
                "<efext:EformsExtension>"
                f'<efbc:FrameworkMaximumAmount currencyID="{currency}">{framework_maximum}'
                "</efbc:FrameworkMaximumAmount>"
                "</efext:EformsExtension>"
                "</ext:ExtensionContent></ext:UBLExtension></ext:UBLExtensions>"
            )
        requested_total = f"<{cac}:RequestedTenderTotal>{''.join(parts)}</{cac}:RequestedTenderTotal>"

    version_xml = f"<{cbc}:VersionID>{version}</{cbc}:VersionID>" if version else ""
    id_xml = f'<{cbc}:ID schemeName="notice-id">{notice_id}</{cbc}:ID>' if notice_id else ""
    issue_xml = ""
    if issue_date:
        issue_xml += f"<{cbc}:IssueDate>{issue_date}</{cbc}:IssueDate>"
    if issue_time:
        issue_xml += f"<{cbc}:IssueTime>{issue_time}</{cbc}:IssueTime>"
    title_xml = f'<{cbc}:Name languageID="DEU">{title}</{cbc}:Name>' if title else ""
    additional_xml = "".join(
        f"<{cac}:AdditionalCommodityClassification>"
        f'<{cbc}:ItemClassificationCode listName="cpv">{code}</{cbc}:ItemClassificationCode>'
        f"</{cac}:AdditionalCommodityClassification>"
        for code in additional_cpvs
    )
    document_xml = ""
    if document_uri:
        document_xml = (
            f"<{cac}:TenderingTerms><{cac}:CallForTendersDocumentReference>"
            f"<{cbc}:ID>DOC-1</{cbc}:ID>"
            f"<{cac}:Attachment><{cac}:ExternalReference><{cbc}:URI>{document_uri}</{cbc}:URI>"
            f"</{cac}:ExternalReference></{cac}:Attachment>"
            f"</{cac}:CallForTendersDocumentReference></{cac}:TenderingTerms>"
        )
    lot_xml = ""
    if lot_id:
        lot_xml = (
            f"<{cac}:ProcurementProjectLot>"
            f'<{cbc}:ID schemeName="Lot">{lot_id}</{cbc}:ID>'
            f"{document_xml}"
            f"<{cac}:TenderingProcess><{cac}:TenderSubmissionDeadlinePeriod>"
            f"<{cbc}:EndDate>{deadline_date}</{cbc}:EndDate>"
            f"<{cbc}:EndTime>{deadline_time}</{cbc}:EndTime>"
            f"</{cac}:TenderSubmissionDeadlinePeriod></{cac}:TenderingProcess>"
            f"<{cac}:ProcurementProject>"
            f'<{cbc}:Name languageID="DEU">{lot_title}</{cbc}:Name>'
            f"<{cac}:PlannedPeriod>"
            f"<{cbc}:StartDate>2025-06-01+02:00</{cbc}:StartDate>"
            f"<{cbc}:EndDate>2026-05-31+02:00</{cbc}:EndDate>"
            f"</{cac}:PlannedPeriod>"
            f"</{cac}:ProcurementProject>"
            f"</{cac}:ProcurementProjectLot>"
        )

    xml = f"""<?xml version="1.0" encoding="UTF-8"?>
<{root} xmlns="{root_uri}" xmlns:{cac}="{CAC_URI}" xmlns:{cbc}="{CBC_URI}"
    xmlns:ext="{EXT_URI}" xmlns:efac="{EFAC_URI}" xmlns:efbc="{EFBC_URI}" xmlns:efext="{EFEXT_URI}">
  <ext:UBLExtensions><ext:UBLExtension><ext:ExtensionContent><efext:EformsExtension>
    {changes}
    <efac:Organizations>
      <efac:Organization>
        <efac:Company>
          <{cbc}:WebsiteURI>www.musterstadt.de</{cbc}:WebsiteURI>
          <{cac}:PartyIdentification><{cbc}:ID>ORG-0001</{cbc}:ID></{cac}:PartyIdentification>
          <{cac}:PartyName><{cbc}:Name languageID="DEU">{buyer_name}</{cbc}:Name></{cac}:PartyName>
          <{cac}:PostalAddress>
            <{cbc}:StreetName>Rathausplatz 1</{cbc}:StreetName>
            <{cbc}:CityName>Musterstadt</{cbc}:CityName>
            <{cbc}:PostalZone>12345</{cbc}:PostalZone>
            <{cac}:Country><{cbc}:IdentificationCode listName="country">DEU</{cbc}:IdentificationCode></{cac}:Country>
          </{cac}:PostalAddress>
          <{cac}:Contact>
            <{cbc}:Telephone>+49 30 1234567</{cbc}:Telephone>
            <{cbc}:ElectronicMail>vergabe@musterstadt.de</{cbc}:ElectronicMail>
          </{cac}:Contact>
        </efac:Company>
      </efac:Organization>
    </efac:Organizations>
    {result}
  </efext:EformsExtension></ext:ExtensionContent></ext:UBLExtension></ext:UBLExtensions>
  <{cbc}:UBLVersionID>2.3</{cbc}:UBLVersionID>
  {version_xml}
  {id_xml}
  {issue_xml}
  <{cbc}:NoticeTypeCode listName="competition">cn-standard</{cbc}:NoticeTypeCode>
  <{cbc}:NoticeLanguageCode>DEU</{cbc}:NoticeLanguageCode>
  <{cac}:ContractingParty>
    <{cac}:Party><{cac}:PartyIdentification><{cbc}:ID>ORG-0001</{cbc}:ID></{cac}:PartyIdentification></{cac}:Party>
  </{cac}:ContractingParty>
  <{cac}:TenderingProcess>
    <{cbc}:ProcedureCode listName="procurement-procedure-type">open</{cbc}:ProcedureCode>
  </{cac}:TenderingProcess>
  <{cac}:ProcurementProject>
    <{cbc}:ID>PROC-1</{cbc}:ID>
    {title_xml}
    <{cbc}:Description languageID="DEU">{description}</{cbc}:Description>
    <{cbc}:ProcurementTypeCode listName="contract-nature">services</{cbc}:ProcurementTypeCode>
    {requested_total}
    <{cac}:MainCommodityClassification>
      <{cbc}:ItemClassificationCode listName="cpv">{cpv}</{cbc}:ItemClassificationCode>
    </{cac}:MainCommodityClassification>
    {additional_xml}
    <{cac}:RealizedLocation><{cac}:Address>
      <{cbc}:CountrySubentityCode listName="nuts">DE300</{cbc}:CountrySubentityCode>
    </{cac}:Address></{cac}:RealizedLocation>
  </{cac}:ProcurementProject>
  {lot_xml}
</{root}>
"""
    return xml.encode("utf-8")


# Ancien format : aucun préfixe ni namespace
LEGACY_UNQUALIFIED_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<ContractNotice>
  <ID>LEG-1</ID>
  <IssueDate>2024-01-05</IssueDate>
  <ProcurementProject>
    <Name>Wartung Rechenzentrum</Name>
    <MainCommodityClassification>
      <ItemClassificationCode listName="cpv">72500000</ItemClassificationCode>
    </MainCommodityClassification>
  </ProcurementProject>
  <Changes>
    <ChangedNoticeIdentifier>LEG-0</ChangedNoticeIdentifier>
  </Changes>
</ContractNotice>
"""


def archive_name(guid: str = NOTICE_GUID, suffix: str = "-01") -> str:
    return f"{guid}{suffix}.xml"


# =====================================================
#                   OCDS
# =====================================================

_BASE_RELEASE: Dict[str, Any] = {
    "ocid": "ocds-b5fd17-0f8e9c2a",
    "id": "ocds-b5fd17-0f8e9c2a-award-1",
    "date": "2025-03-03T09:15:00Z",
    "language": "en",
    "tag": ["award"],
    "buyer": {"id": "GB-CF-BUYER-1", "name": "Example Borough Council"},
    "parties": [
        {
            "id": "GB-CF-BUYER-1",
            "name": "Example Borough Council",
            "roles": ["buyer"],
            "address": {
                "streetAddress": "1 Civic Way",
                "locality": "Exampleton",
                "postalCode": "EX1 1AA",
                "countryName": "England",
            },
            "contactPoint": {
                "name": "Procurement Team",
                "email": "procurement@example.gov.uk",
                "telephone": "01234 567890",
            },
        },
        {
            "id": "GB-COH-123456",
            "name": "Acme Digital Ltd",
            "roles": ["supplier"],
            "details": {"scale": "sme"},
        },
        {
            "id": "GB-COH-654321",
            "name": "Byte Works Ltd",
            "roles": ["supplier"],
            "details": {"scale": "large"},
        },
    ],
    "tender": {
        "id": "T-1",
        "title": "Case management system development",
        "description": "Design, build and support of a case management system.",
        "classification": {"scheme": "CPV", "id": "72212000", "description": "Software development"},
        "additionalClassifications": [
            {"scheme": "CPV", "id": "72260000"},
            {"scheme": "CPV", "id": "72212000"},
        ],
        "procurementMethod": "open",
        "procurementMethodDetails": "Open procedure",
        "mainProcurementCategory": "services",
        "value": {"amount": 120000, "currency": "GBP"},
        "suitability": {"sme": True, "vcse": False},
        "tenderPeriod": {"endDate": "2025-01-15T12:00:00Z"},
        "contractPeriod": {"startDate": "2025-04-01T00:00:00Z", "endDate": "2027-03-31T23:59:59Z"},
        "items": [
            {
                "id": "1",
                "deliveryAddresses": [
                    {"region": "South East", "postalCode": "EX1 1AA", "countryName": "United Kingdom"}
                ],
            }
        ],
    },
    "awards": [
        {
            "id": "AW-1",
            "status": "active",
            "date": "2025-02-20T00:00:00Z",
            "datePublished": "2025-03-03T09:15:00Z",
            "value": {"amount": 98500.5, "currency": "GBP"},
            "suppliers": [
                {"id": "GB-COH-123456", "name": "Acme Digital Ltd"},
                {"id": "GB-COH-654321", "name": "Byte Works Ltd"},
            ],
            "contractPeriod": {"startDate": "2025-04-01T00:00:00Z", "endDate": "2027-03-31T00:00:00Z"},
            "documents": [
                {"id": "D-0", "documentType": "contractNotice", "url": "https://www.contractsfinder.service.gov.uk/Notice/tender"},
                {"id": "D-1", "documentType": "awardNotice", "url": "https://www.contractsfinder.service.gov.uk/Notice/award"},
            ],
        },
        {
            "id": "AW-2",
            "status": "active",
            "suppliers": [
                {"id": "GB-COH-654321", "name": "Byte Works Ltd"},
                {"id": "GB-COH-777777", "name": "Cloud Partners LLP"},
            ],
        },
    ],
}


def build_ocds_release(**overrides: Any) -> Dict[str, Any]:
    """Release d'attribution Contracts Finder ; `overrides` remplace des clés de premier niveau."""
    release = copy.deepcopy(_BASE_RELEASE)
    release.update(overrides)
    return release


def build_ocds_page(releases: List[Dict[str, Any]], next_url: Optional[str] = None) -> Dict[str, Any]:
    page: Dict[str, Any] = {"releases": releases}
    if next_url is not None:
        page["links"] = {"next": next_url}
    return page
