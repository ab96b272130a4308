"""
Database core module per winenode-importer.

Gestisce connessione asincrona, modelli (giacenze, fornitori, tipologie,
link Google Sheet) e lo store usato dal merge engine. Ogni operazione è
filtrata per user_id: nessuna riga è visibile tra utenti diversi.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, UniqueConstraint, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from core.config import get_config
from ingest.types import StoredWine

logger = logging.getLogger(__name__)

Base = declarative_base()


class Wine(Base):
    """Giacenza vino di un utente"""
    __tablename__ = 'giacenze'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    type = Column(String(50), index=True)
    supplier = Column(String(200))
    producer = Column(String(200))
    inventory = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    price = Column(Float, default=0.0)
    cost_price = Column(Float, default=0.0)
    vintage = Column(String(10))
    region = Column(String(200))
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Supplier(Base):
    """Fornitore registrato dall'utente"""
    __tablename__ = 'fornitori'
    __table_args__ = (UniqueConstraint('user_id', 'name', name='uq_fornitori_user_name'),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class Category(Base):
    """Tipologia vino (ROSSI, BIANCHI, ...) dell'utente"""
    __tablename__ = 'tipologie'
    __table_args__ = (UniqueConstraint('user_id', 'name', name='uq_tipologie_user_name'),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20))
    created_at = Column(DateTime, default=datetime.utcnow)


class SheetLink(Base):
    """Ultimo link Google Sheet usato per l'import"""
    __tablename__ = 'google_sheet_links'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    sheet_url = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


_engine = None
_session_factory = None


def get_engine():
    """Engine asincrono PostgreSQL (creato alla prima richiesta)."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_config().database_url, echo=False)
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(bind=get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


async def get_db():
    """Dependency per ottenere sessione database"""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables():
    """Crea le tabelle dei modelli se non esistono."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[DATABASE] Tabelle verificate/create")


# Colonne aggiornabili dal merge engine (chiave StoredWine -> colonna)
WINE_FIELDS = {
    "name": "name",
    "type": "type",
    "supplier": "supplier",
    "producer": "producer",
    "stock_quantity": "inventory",
    "min_stock": "min_stock",
    "price": "price",
    "cost_price": "cost_price",
    "vintage": "vintage",
    "region": "region",
    "description": "description",
}


def _to_stored(row: Wine) -> StoredWine:
    return StoredWine(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        type=row.type,
        supplier=row.supplier,
        producer=row.producer,
        stock_quantity=row.inventory or 0,
        min_stock=row.min_stock or 0,
        price=row.price or 0.0,
        cost_price=row.cost_price or 0.0,
        vintage=row.vintage,
        region=row.region,
        description=row.description,
    )


class SqlWineStore:
    """
    Persistenza giacenze su PostgreSQL, filtrata per utente.

    Ogni scrittura fa commit subito: il merge engine attende ogni chiamata
    prima di passare al record successivo.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self):
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def list_wines(self, user_id: str) -> List[StoredWine]:
        result = await self.session.execute(
            select(Wine).where(Wine.user_id == user_id).order_by(Wine.id)
        )
        return [_to_stored(row) for row in result.scalars().all()]

    async def find_wines_by_name(self, user_id: str, name: str) -> List[StoredWine]:
        """Vini con stesso nome (trim, case-insensitive), ordinati per id."""
        key = (name or "").strip().lower()
        result = await self.session.execute(
            select(Wine)
            .where(Wine.user_id == user_id, func.lower(func.trim(Wine.name)) == key)
            .order_by(Wine.id)
        )
        return [_to_stored(row) for row in result.scalars().all()]

    async def insert_wine(self, user_id: str, values: Dict[str, Any]) -> StoredWine:
        row = Wine(user_id=user_id, **{WINE_FIELDS[k]: v for k, v in values.items() if k in WINE_FIELDS})
        self.session.add(row)
        await self._commit()
        return _to_stored(row)

    async def update_wine(self, user_id: str, wine_id: int, values: Dict[str, Any]) -> StoredWine:
        result = await self.session.execute(
            select(Wine).where(Wine.user_id == user_id, Wine.id == wine_id)
        )
        row = result.scalar_one()
        for key, value in values.items():
            if key in WINE_FIELDS:
                setattr(row, WINE_FIELDS[key], value)
        await self._commit()
        return _to_stored(row)

    async def delete_wines_by_type(self, user_id: str, wine_type: str) -> int:
        result = await self.session.execute(
            delete(Wine).where(Wine.user_id == user_id, Wine.type == wine_type)
        )
        await self._commit()
        return result.rowcount or 0

    async def list_categories(self, user_id: str) -> List[str]:
        result = await self.session.execute(
            select(Category.name).where(Category.user_id == user_id).order_by(Category.name)
        )
        return list(result.scalars().all())

    async def ensure_category(self, user_id: str, name: str) -> None:
        result = await self.session.execute(
            select(Category.id).where(Category.user_id == user_id, Category.name == name)
        )
        if result.scalar() is None:
            self.session.add(Category(user_id=user_id, name=name))
            await self._commit()

    async def list_suppliers(self, user_id: str) -> List[str]:
        result = await self.session.execute(
            select(Supplier.name).where(Supplier.user_id == user_id).order_by(Supplier.name)
        )
        return list(result.scalars().all())

    async def ensure_supplier(self, user_id: str, name: str) -> None:
        result = await self.session.execute(
            select(Supplier.id).where(Supplier.user_id == user_id, Supplier.name == name)
        )
        if result.scalar() is None:
            self.session.add(Supplier(user_id=user_id, name=name))
            await self._commit()

    async def get_sheet_link(self, user_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(SheetLink.sheet_url).where(SheetLink.user_id == user_id)
        )
        return result.scalar()

    async def save_sheet_link(self, user_id: str, sheet_url: str) -> None:
        result = await self.session.execute(select(SheetLink).where(SheetLink.user_id == user_id))
        link = result.scalar_one_or_none()
        if link is None:
            self.session.add(SheetLink(user_id=user_id, sheet_url=sheet_url))
        else:
            link.sheet_url = sheet_url
        await self._commit()

    async def delete_sheet_link(self, user_id: str) -> None:
        await self.session.execute(delete(SheetLink).where(SheetLink.user_id == user_id))
        await self._commit()
