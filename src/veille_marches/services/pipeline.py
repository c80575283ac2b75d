# src/veille_marches/services/pipeline.py

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, Tuple, TypeVar

from veille_marches.config import DEFAULT_CPV_PREFIXES
from veille_marches.errors import ParseError, StoreUnavailable, TransportFailure
from veille_marches.models.notice import ParsedNotice
from veille_marches.models.stored import (
    AwardReleaseRecord,
    DocumentResult,
    RunReport,
    StoredNotice,
)
from veille_marches.parsers.eforms_xml import parse_eforms_notice
from veille_marches.parsers.ocds_release import parse_ocds_release
from veille_marches.persistence.award_store import AwardStore
from veille_marches.persistence.notice_store import NoticeStore
from veille_marches.services.enrichment import NoticeAnalyzer, analyze_safely
from veille_marches.services.filtering import is_guid_filename, is_notice_in_domain
from veille_marches.services.identity import resolve_identity
from veille_marches.services.status import resolve_status_from_hint

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (nom de l'entrée d'archive, contenu XML)
ArchiveEntry = Tuple[str, bytes]


def _release_label(release: Any, position: int) -> str:
    if isinstance(release, dict):
        return str(release.get("ocid") or release.get("id") or f"release #{position}")
    return f"release #{position}"


class IngestionPipeline:
    """
    Un run = pour chaque document : parse -> filtre métier -> statut /
    identité -> enrichissement facultatif -> enregistrement.

    L'échec d'un document est consigné dans le rapport et n'arrête pas
    le run. Une panne réseau de la source arrête la source (ce qui est
    déjà enregistré le reste) ; une base injoignable (StoreUnavailable)
    arrête tout.
    """

    def __init__(
        self,
        notice_store: NoticeStore,
        award_store: Optional[AwardStore] = None,
        cpv_prefixes: Sequence[str] = DEFAULT_CPV_PREFIXES,
        exclusion_keywords: Sequence[str] = (),
        analyzer: Optional[NoticeAnalyzer] = None,
    ):
        self.notice_store = notice_store
        self.award_store = award_store
        self.cpv_prefixes = tuple(cpv_prefixes)
        self.exclusion_keywords = tuple(exclusion_keywords)
        self.analyzer = analyzer

    # ==========================
    #   Boucle commune
    # ==========================

    def _run(
        self,
        items: Iterable[T],
        label: Callable[[T, int], str],
        process: Callable[[T, str], DocumentResult],
        source_name: str,
    ) -> RunReport:
        report = RunReport()
        iterator: Iterator[T] = iter(items)
        position = 0

        while True:
            try:
                item = next(iterator)
            except StopIteration:
                break
            except TransportFailure as exc:
                logger.error("Source %s interrompue: %s", source_name, exc)
                report = report.with_error(source_name, str(exc))
                break

            position += 1
            document_id = label(item, position)
            try:
                result = process(item, document_id)
            except StoreUnavailable:
                raise
            except Exception as exc:
                # un document fautif ne doit jamais arrêter le run
                logger.exception("Échec inattendu sur %s", document_id)
                result = DocumentResult(document_id, error=f"{type(exc).__name__}: {exc}")
            report = report.absorb(result)

        logger.info(
            "Run %s terminé: %d lus, %d insérés, %d mis à jour, %d inchangés, %d ignorés, %d en erreur",
            source_name,
            report.fetched,
            report.inserted,
            report.updated,
            report.unchanged,
            report.skipped,
            report.errored,
        )
        return report

    def _keep(self, parsed: ParsedNotice, document_id: str) -> bool:
        if is_notice_in_domain(parsed, self.cpv_prefixes, self.exclusion_keywords):
            return True
        logger.debug(
            "%s hors périmètre (CPV %s)", document_id, parsed.classification.primary_code
        )
        return False

    # ==========================
    #   eForms (XML)
    # ==========================

    def run_eforms(self, documents: Iterable[ArchiveEntry]) -> RunReport:
        return self._run(documents, lambda doc, _: doc[0], self._process_eforms, "eforms")

    def _process_eforms(self, document: ArchiveEntry, document_id: str) -> DocumentResult:
        filename, raw = document

        if not is_guid_filename(filename):
            logger.debug("Fichier %s ignoré (nom non GUID)", filename)
            return DocumentResult(document_id, skipped=True)

        try:
            parsed = parse_eforms_notice(raw, document_id)
        except ParseError as exc:
            logger.warning("Avis %s illisible: %s", document_id, exc)
            return DocumentResult(document_id, error=str(exc))

        if not self._keep(parsed, document_id):
            return DocumentResult(document_id, skipped=True)

        candidate = self.build_stored_notice(parsed)
        outcome = self.notice_store.upsert(candidate)
        logger.debug("%s -> %s", candidate.versioned_key, outcome.value)
        return DocumentResult(document_id, outcome=outcome)

    def build_stored_notice(self, parsed: ParsedNotice) -> StoredNotice:
        identity = resolve_identity(parsed)
        return StoredNotice.from_parsed(
            parsed,
            notice_id=identity.notice_id,
            version=identity.version,
            versioned_key=identity.versioned_key,
            status=resolve_status_from_hint(parsed.status_hint),
            analysis=analyze_safely(self.analyzer, parsed),
        )

    # ==========================
    #   OCDS (attributions UK)
    # ==========================

    def run_awards(self, releases: Iterable[Any]) -> RunReport:
        if self.award_store is None:
            raise ValueError("run_awards nécessite un AwardStore")
        return self._run(releases, _release_label, self._process_award, "ocds")

    def _process_award(self, release: Any, document_id: str) -> DocumentResult:
        try:
            parsed = parse_ocds_release(release, document_id)
        except ParseError as exc:
            logger.warning("Release %s illisible: %s", document_id, exc)
            return DocumentResult(document_id, error=str(exc))

        if not self._keep(parsed, document_id):
            return DocumentResult(document_id, skipped=True)

        outcome = self.award_store.upsert(AwardReleaseRecord.from_parsed(parsed))
        logger.debug("%s -> %s", parsed.source_notice_id, outcome.value)
        return DocumentResult(document_id, outcome=outcome)
