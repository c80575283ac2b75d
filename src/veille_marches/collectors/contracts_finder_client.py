# src/veille_marches/collectors/contracts_finder_client.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional, Set

import requests
from requests import Response, Session
from requests.exceptions import RequestException, Timeout

from veille_marches.errors import TransportFailure

logger = logging.getLogger(__name__)

# Recherche OCDS de Contracts Finder (marchés publics britanniques)
CONTRACTS_FINDER_URL = "https://www.contractsfinder.service.gov.uk/Published/Notices/OCDS/Search"


@dataclass(frozen=True)
class ContractsFinderConfig:
    base_url: str = CONTRACTS_FINDER_URL
    stages: str = "award"
    page_size: int = 100
    timeout: int = 30


class ContractsFinderClient:
    """
    Client pour la recherche OCDS de Contracts Finder.

    La pagination suit `links.next` jusqu'à : lien absent ou vide, page
    sans release, ou URL déjà visitée (l'API renvoie parfois la même page).
    """

    def __init__(self, config: Optional[ContractsFinderConfig] = None, session: Optional[Session] = None):
        self.config = config or ContractsFinderConfig()
        self.session: Session = session or requests.Session()

    def _request(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET avec gestion d'erreurs.

        Retourne le JSON décodé, ou lève TransportFailure.
        """
        try:
            response: Response = self.session.get(url, params=params, timeout=self.config.timeout)
        except Timeout as exc:
            logger.error("Timeout lors de l'appel à Contracts Finder.")
            raise TransportFailure("Timeout API Contracts Finder") from exc
        except RequestException as exc:
            logger.error("Erreur réseau lors de l'appel à Contracts Finder: %s", exc)
            raise TransportFailure("Erreur réseau API Contracts Finder") from exc

        if not response.ok:
            logger.error(
                "Erreur HTTP Contracts Finder: status=%s, body=%s",
                response.status_code,
                response.text[:500],
            )
            raise TransportFailure(f"Erreur HTTP Contracts Finder {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Réponse Contracts Finder non JSON: %s", response.text[:500])
            raise TransportFailure("Réponse Contracts Finder non JSON") from exc

        if not isinstance(data, dict):
            raise TransportFailure("Réponse Contracts Finder inattendue (objet JSON attendu)")
        return data

    def search_params(self, day: date) -> Dict[str, Any]:
        return {
            "publishedFrom": day.isoformat(),
            "publishedTo": (day + timedelta(days=1)).isoformat(),
            "stages": self.config.stages,
            "limit": self.config.page_size,
        }

    def iter_releases(self, day: date) -> Iterator[Dict[str, Any]]:
        """Génère les releases d'attribution publiées le jour donné."""
        url: Optional[str] = self.config.base_url
        params: Optional[Dict[str, Any]] = self.search_params(day)
        seen: Set[str] = set()
        page = 0
        total = 0

        while url:
            page_key = requests.Request("GET", url, params=params).prepare().url
            if page_key in seen:
                logger.warning("URL de pagination déjà visitée (%s), arrêt.", url)
                break
            seen.add(page_key)

            page += 1
            logger.debug("Contracts Finder page %d: %s", page, url)
            data = self._request(url, params)

            releases: List[Any] = data.get("releases") or []
            if not releases:
                logger.info("Plus aucune release retournée par Contracts Finder, arrêt.")
                break

            for release in releases:
                total += 1
                yield release

            links = data.get("links") or {}
            url = links.get("next") if isinstance(links, dict) else None
            # Le lien `next` contient déjà tous les paramètres
            params = None

        logger.info("Contracts Finder: %d release(s) sur %d page(s) pour le %s", total, page, day)
