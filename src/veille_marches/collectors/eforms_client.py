# src/veille_marches/collectors/eforms_client.py

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Tuple

import requests
from requests import Response, Session
from requests.exceptions import RequestException, Timeout

from veille_marches.errors import TransportFailure

logger = logging.getLogger(__name__)

# Export quotidien des avis eForms publiés sur le service national allemand
EFORMS_EXPORT_URL = "https://oeffentlichevergabe.de/api/notice-exports"


@dataclass(frozen=True)
class EformsExportConfig:
    base_url: str = EFORMS_EXPORT_URL
    export_format: str = "eforms.zip"
    timeout: int = 60


class EformsExportClient:
    """
    Télécharge l'archive ZIP d'une journée de publication et en sort les
    documents XML un par un.
    """

    def __init__(self, config: Optional[EformsExportConfig] = None, session: Optional[Session] = None):
        self.config = config or EformsExportConfig()
        self.session: Session = session or requests.Session()

    def _download(self, day: date) -> bytes:
        params = {"pubDay": day.isoformat(), "format": self.config.export_format}
        try:
            response: Response = self.session.get(
                self.config.base_url,
                params=params,
                timeout=self.config.timeout,
            )
        except Timeout as exc:
            logger.error("Timeout lors du téléchargement de l'export eForms du %s.", day)
            raise TransportFailure(f"Timeout export eForms {day}") from exc
        except RequestException as exc:
            logger.error("Erreur réseau lors du téléchargement de l'export eForms: %s", exc)
            raise TransportFailure(f"Erreur réseau export eForms {day}") from exc

        if not response.ok:
            logger.error(
                "Erreur HTTP export eForms: status=%s, body=%s",
                response.status_code,
                response.text[:500],
            )
            raise TransportFailure(f"Erreur HTTP export eForms {response.status_code}")

        return response.content

    def iter_documents(self, day: date) -> Iterator[Tuple[str, bytes]]:
        """
        Génère (nom de l'entrée, contenu) pour chaque fichier XML de
        l'archive du jour. Le filtrage par nom est fait par le pipeline.
        """
        content = self._download(day)
        logger.info("Export eForms du %s téléchargé (%d octets)", day, len(content))

        try:
            archive = zipfile.ZipFile(io.BytesIO(content))
        except zipfile.BadZipFile as exc:
            logger.error("Archive eForms du %s invalide: %s", day, exc)
            raise TransportFailure(f"Archive eForms invalide pour le {day}") from exc

        with archive:
            entries = [
                info for info in archive.infolist()
                if not info.is_dir() and info.filename.lower().endswith(".xml")
            ]
            logger.info("L'archive contient %d fichiers XML", len(entries))
            for info in entries:
                try:
                    data = archive.read(info)
                except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, OSError) as exc:
                    # entrée corrompue, compression non supportée ou chiffrée
                    logger.error("Entrée %s illisible dans l'export du %s: %s", info.filename, day, exc)
                    raise TransportFailure(
                        f"Entrée {info.filename} illisible dans l'export du {day}"
                    ) from exc
                yield info.filename, data
