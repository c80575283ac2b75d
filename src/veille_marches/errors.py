# src/veille_marches/errors.py

from __future__ import annotations


class VeilleMarchesError(Exception):
    """Base de toutes les erreurs du projet."""


class ConfigError(VeilleMarchesError):
    """Configuration (variables d'environnement) invalide."""


# =====================================================
#                   PARSING
# =====================================================

class ParseError(VeilleMarchesError):
    """
    Un document n'a pas pu être transformé en ParsedNotice.

    Le document est abandonné, le reste du lot continue.
    """

    def __init__(self, message: str, document_id: str | None = None):
        super().__init__(message)
        self.document_id = document_id


class MissingIdentity(ParseError):
    """Identifiant obligatoire absent (ID d'avis eForms / OCID)."""


class MalformedDocument(ParseError):
    """XML ou JSON illisible."""


class UnparseableField(VeilleMarchesError):
    """
    Champ individuel invalide : le champ est omis, l'avis est conservé.

    Ne sort jamais d'un parser.
    """

    def __init__(self, field_name: str, raw_value: object):
        super().__init__(f"Champ '{field_name}' illisible: {raw_value!r}")
        self.field_name = field_name
        self.raw_value = raw_value


# =====================================================
#                   TRANSPORT / STOCKAGE
# =====================================================

class TransportFailure(VeilleMarchesError, RuntimeError):
    """Échec réseau / HTTP lors de la récupération d'une archive ou d'une page."""


class StoreUnavailable(VeilleMarchesError):
    """Base de données injoignable : seule erreur fatale d'un run."""
