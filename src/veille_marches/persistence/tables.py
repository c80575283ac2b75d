# src/veille_marches/persistence/tables.py

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from veille_marches.errors import StoreUnavailable


class Base(DeclarativeBase):
    pass


class UtcDateTime(TypeDecorator):
    """
    Datetime toujours en UTC.

    Stocké sans fuseau (même comportement SQLite / PostgreSQL), relu
    avec tzinfo=UTC. Une valeur naïve en écriture est supposée UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Amount = Numeric(18, 2, asdecimal=True)


# =====================================================
#                   TABLE notices
# =====================================================

class NoticeRow(Base):
    """Une ligne par (avis, lot, version)."""

    __tablename__ = "notices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    versioned_key: Mapped[str] = mapped_column(String(255), nullable=False)
    notice_id: Mapped[str] = mapped_column(String(255), nullable=False)
    lot_id: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    source: Mapped[str] = mapped_column(String(20), nullable=False)
    notice_type_code: Mapped[Optional[str]] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    language: Mapped[Optional[str]] = mapped_column(String(10))

    cpv_code: Mapped[Optional[str]] = mapped_column(String(20))
    additional_cpv_codes: Mapped[List[str]] = mapped_column(JSON, default=list)
    nuts_code: Mapped[Optional[str]] = mapped_column(String(20))
    contract_nature: Mapped[Optional[str]] = mapped_column(String(50))
    procedure_type: Mapped[Optional[str]] = mapped_column(String(100))

    buyer_name: Mapped[Optional[str]] = mapped_column(String(500))
    buyer_website: Mapped[Optional[str]] = mapped_column(String(1000))
    buyer_email: Mapped[Optional[str]] = mapped_column(String(255))
    buyer_phone: Mapped[Optional[str]] = mapped_column(String(100))
    buyer_city: Mapped[Optional[str]] = mapped_column(String(255))
    buyer_country: Mapped[Optional[str]] = mapped_column(String(10))

    value_amount: Mapped[Optional[Decimal]] = mapped_column(Amount)
    value_currency: Mapped[Optional[str]] = mapped_column(String(3))

    publication_date: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    submission_deadline: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    contract_start: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    contract_end: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)

    portal_url: Mapped[Optional[str]] = mapped_column(String(1000))
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False)

    buyer_name_en: Mapped[Optional[str]] = mapped_column(String(500))
    title_en: Mapped[Optional[str]] = mapped_column(Text)
    summary_en: Mapped[Optional[str]] = mapped_column(Text)
    fatal_flaws: Mapped[List[str]] = mapped_column(JSON, default=list)
    tech_stack: Mapped[List[str]] = mapped_column(JSON, default=list)
    suitability_score: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("versioned_key", name="uq_notices_versioned_key"),
        Index("ix_notices_notice_id", "notice_id"),
        Index("ix_notices_publication_date", "publication_date"),
        Index("ix_notices_cpv_code", "cpv_code"),
    )


# =====================================================
#                TABLE award_releases
# =====================================================

class AwardReleaseRow(Base):
    """Une ligne par OCID, remplacée à chaque nouvelle release."""

    __tablename__ = "award_releases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ocid: Mapped[str] = mapped_column(String(255), nullable=False)
    release_id: Mapped[Optional[str]] = mapped_column(String(255))
    release_date: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cpv_code: Mapped[Optional[str]] = mapped_column(String(20))
    cpv_description: Mapped[Optional[str]] = mapped_column(String(500))
    additional_cpv_codes: Mapped[List[str]] = mapped_column(JSON, default=list)
    procurement_method: Mapped[Optional[str]] = mapped_column(String(100))
    procurement_method_details: Mapped[Optional[str]] = mapped_column(String(255))
    main_procurement_category: Mapped[Optional[str]] = mapped_column(String(50))

    tender_value_amount: Mapped[Optional[Decimal]] = mapped_column(Amount)
    tender_value_currency: Mapped[Optional[str]] = mapped_column(String(3))
    suitable_sme: Mapped[Optional[bool]] = mapped_column(Boolean)
    suitable_vcse: Mapped[Optional[bool]] = mapped_column(Boolean)
    tender_deadline: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    tender_contract_start: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    tender_contract_end: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)

    delivery_region: Mapped[Optional[str]] = mapped_column(String(255))
    delivery_postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    delivery_country: Mapped[Optional[str]] = mapped_column(String(100))

    buyer_name: Mapped[Optional[str]] = mapped_column(String(500))
    buyer_street_address: Mapped[Optional[str]] = mapped_column(String(500))
    buyer_locality: Mapped[Optional[str]] = mapped_column(String(255))
    buyer_postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    buyer_country: Mapped[Optional[str]] = mapped_column(String(100))
    buyer_contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    buyer_contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    buyer_contact_phone: Mapped[Optional[str]] = mapped_column(String(100))

    award_id: Mapped[Optional[str]] = mapped_column(String(255))
    award_status: Mapped[Optional[str]] = mapped_column(String(50))
    award_date: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    award_date_published: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    award_value_amount: Mapped[Optional[Decimal]] = mapped_column(Amount)
    award_value_currency: Mapped[Optional[str]] = mapped_column(String(3))
    award_contract_start: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    award_contract_end: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)

    supplier_names: Mapped[List[str]] = mapped_column(JSON, default=list)
    supplier_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    supplier_scale: Mapped[Optional[str]] = mapped_column(String(50))

    notice_url: Mapped[Optional[str]] = mapped_column(String(1000))
    raw_json: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("ocid", name="uq_award_releases_ocid"),
    )


# =====================================================
#                   ENGINE / SESSIONS
# =====================================================

def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    pysqlite gère lui-même les BEGIN, ce qui casse les SAVEPOINT :
    on reprend la main sur le début de transaction.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str) -> Engine:
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # Base en mémoire partagée par toutes les sessions (tests)
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine


def init_db(database_url: str) -> sessionmaker:
    """Crée les tables si besoin et renvoie une fabrique de sessions."""
    engine = create_db_engine(database_url)
    try:
        Base.metadata.create_all(engine)
    except OperationalError as exc:
        raise StoreUnavailable(f"Base de données inaccessible ({database_url}): {exc}") from exc
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Une transaction par bloc : commit en sortie, rollback sur erreur.
    Une base injoignable remonte en StoreUnavailable.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        raise StoreUnavailable(f"Base de données inaccessible: {exc}") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def quantize_amount(amount: Optional[Decimal]) -> Optional[Decimal]:
    """Montant arrondi au centime, comme il sera relu depuis la base."""
    if amount is None:
        return None
    return amount.quantize(Decimal("0.01"))
