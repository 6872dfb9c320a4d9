"""Shared fixtures for storefront catalog tests.

Every test gets a fresh in-memory SQLite database (through aiosqlite)
seeded with one product and a small attribute catalog:

    Color    = {Red, Blue}
    Size     = {S, M}
    Material = {Cotton}

plus four unlinked media rows and one media row owned by another product.
Nothing is bound to the product until a test binds it.

API tests use the ``client`` fixture, which serves the same seed from a
SQLite file.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool, StaticPool

from storefront.catalog.bindings import AttributeBindingService, BindingSpec
from storefront.catalog.models import Attribute, AttributeValue, Media, Product, ProductAttribute
from storefront.infrastructure.database import (
    Base,
    build_engine,
    build_session_factory,
    get_session,
    transaction_scope,
)
from storefront.main import app


@dataclass(frozen=True)
class SeedIds:
    """IDs of the seeded rows."""

    product: int = 1
    other_product: int = 2
    color: int = 1
    size: int = 2
    material: int = 3
    red: int = 11
    blue: int = 12
    small: int = 21
    medium: int = 22
    cotton: int = 31
    media: tuple[int, ...] = (101, 102, 103, 104)
    foreign_media: int = 105


IDS = SeedIds()


def seed_rows() -> list[Any]:
    """Build the seed rows with fixed IDs."""
    return [
        Product(id=IDS.product, sku="TSHIRT-001", name_en="T-Shirt", name_ar="تي شيرت"),
        Product(id=IDS.other_product, sku="MUG-001", name_en="Mug", name_ar="كوب"),
        Attribute(id=IDS.color, name_en="Color", name_ar="اللون", sort_order=1),
        Attribute(id=IDS.size, name_en="Size", name_ar="المقاس", sort_order=2),
        Attribute(id=IDS.material, name_en="Material", name_ar="الخامة", sort_order=3),
        AttributeValue(id=IDS.red, attribute_id=IDS.color, value_en="Red", value_ar="أحمر", sort_order=1),
        AttributeValue(id=IDS.blue, attribute_id=IDS.color, value_en="Blue", value_ar="أزرق", sort_order=2),
        AttributeValue(id=IDS.small, attribute_id=IDS.size, value_en="S", value_ar="صغير", sort_order=1),
        AttributeValue(id=IDS.medium, attribute_id=IDS.size, value_en="M", value_ar="متوسط", sort_order=2),
        AttributeValue(id=IDS.cotton, attribute_id=IDS.material, value_en="Cotton", value_ar="قطن"),
        *[
            Media(id=media_id, url=f"https://cdn.example.com/{media_id}.jpg", type="image")
            for media_id in IDS.media
        ],
        Media(
            id=IDS.foreign_media,
            url=f"https://cdn.example.com/{IDS.foreign_media}.jpg",
            type="image",
            product_id=IDS.other_product,
        ),
    ]


@pytest.fixture
def ids() -> SeedIds:
    """Seeded row IDs."""
    return IDS


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Seeded session; the test's writes are rolled back afterwards."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(seed_rows())
        await session.flush()
        yield session
        await session.rollback()


@pytest.fixture
def bind(session: AsyncSession) -> Callable[..., Awaitable[list[ProductAttribute]]]:
    """Bind attributes to the seeded product.

    Usage:
        await bind(ids.color, controls_pricing=True)
    """

    async def _bind(attribute_id: int, product_id: int = IDS.product, **flags: bool) -> list[ProductAttribute]:
        return await AttributeBindingService(session).upsert_bindings(
            product_id, [BindingSpec(attribute_id=attribute_id, **flags)]
        )

    return _bind


def seed_file(db_path: Path) -> None:
    """Create and seed a SQLite file through a plain synchronous engine."""
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    with Session(sync_engine) as seed_session:
        seed_session.add_all(seed_rows())
        seed_session.commit()
    sync_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Factory for independent sessions over one seeded SQLite file.

    Each session gets its own connection, so one session sees another's
    writes only after they are committed.
    """
    db_path = tmp_path / "sessions.db"
    seed_file(db_path)
    file_engine = build_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield build_session_factory(file_engine)
    await file_engine.dispose()


@pytest.fixture
def client(tmp_path: Path) -> Generator[TestClient, None, None]:
    """Test client backed by a seeded SQLite file.

    Requests get sessions from an aiosqlite engine without pooling, so no
    connection outlives the event loop that opened it.
    """
    db_path = tmp_path / "catalog.db"
    seed_file(db_path)
    factory = build_session_factory(
        build_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    )

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with transaction_scope(factory) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
