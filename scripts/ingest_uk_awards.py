# scripts/ingest_uk_awards.py

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, timedelta

from veille_marches.collectors.contracts_finder_client import (
    ContractsFinderClient,
    ContractsFinderConfig,
)
from veille_marches.config import IngestionConfig
from veille_marches.errors import ConfigError, StoreUnavailable
from veille_marches.persistence.award_store import AwardStore
from veille_marches.persistence.json_store import save_run_report
from veille_marches.persistence.notice_store import NoticeStore
from veille_marches.persistence.paths import ensure_data_dirs, report_path
from veille_marches.services.pipeline import IngestionPipeline

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger("ingest_uk_awards")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ingestion des attributions Contracts Finder (OCDS) d'une journée."
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=date.today() - timedelta(days=1),
        help="Jour de publication (YYYY-MM-DD), hier par défaut.",
    )
    parser.add_argument(
        "--all-cpv",
        action="store_true",
        help="Garde toutes les attributions, quel que soit le code CPV.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = IngestionConfig.from_env()
    except ConfigError as exc:
        logger.error("Configuration invalide: %s", exc)
        return 2
    logging.getLogger().setLevel(config.log_level)

    ensure_data_dirs()
    logger.info("Ingestion des attributions UK du %s", args.date)

    try:
        notice_store = NoticeStore.open(config.database_url)
        award_store = AwardStore(notice_store.session_factory)
        pipeline = IngestionPipeline(
            notice_store,
            award_store=award_store,
            cpv_prefixes=() if args.all_cpv else config.cpv_prefixes,
            exclusion_keywords=config.exclusion_keywords,
        )
        client = ContractsFinderClient(
            ContractsFinderConfig(page_size=config.page_size, timeout=config.http_timeout)
        )
        report = pipeline.run_awards(client.iter_releases(args.date))
    except StoreUnavailable as exc:
        logger.error("Base de données indisponible, run abandonné: %s", exc)
        return 1

    output_path = report_path("uk_awards", args.date)
    try:
        save_run_report(output_path, report, extra={"source": "ocds", "day": args.date.isoformat()})
    except OSError:
        return 1

    logger.info("Rapport écrit dans: %s", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
