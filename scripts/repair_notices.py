# scripts/repair_notices.py

from __future__ import annotations

import logging
import sys

from veille_marches.config import IngestionConfig
from veille_marches.errors import ConfigError, StoreUnavailable
from veille_marches.persistence.json_store import save_run_report
from veille_marches.persistence.notice_store import NoticeStore
from veille_marches.persistence.paths import ensure_data_dirs, report_path
from veille_marches.services.repair import repair_notices

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger("repair_notices")


def main() -> int:
    try:
        config = IngestionConfig.from_env()
    except ConfigError as exc:
        logger.error("Configuration invalide: %s", exc)
        return 2
    logging.getLogger().setLevel(config.log_level)

    ensure_data_dirs()

    try:
        store = NoticeStore.open(config.database_url)
        report = repair_notices(store)
    except StoreUnavailable as exc:
        logger.error("Base de données indisponible: %s", exc)
        return 1

    output_path = report_path("repair")
    try:
        save_run_report(output_path, report)
    except OSError:
        return 1

    logger.info("Rapport de réparation écrit dans: %s", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
