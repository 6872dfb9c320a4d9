"""SQLAlchemy models for the product catalog.

Junction rows (group values, variant combinations) are plain foreign-key
rows with no ORM relationship back to their parent; repositories load them
with a second query and join them in memory.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from storefront.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _decimal(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


class TimestampMixin:
    """created_at / updated_at columns shared by every table."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ============================================================================
# Product & Attribute Catalog
# ============================================================================


class Product(TimestampMixin, Base):
    """Parent record of every group, variant and stock row.

    Attributes:
        id: Product identifier.
        sku: Stock Keeping Unit.
        name_en: English name.
        name_ar: Arabic name.
        is_active: Whether the product is listed.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name_en: Mapped[str] = mapped_column(String(500), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Product(id={self.id}, sku={self.sku})>"


class Attribute(TimestampMixin, Base):
    """Attribute definition (Color, Size, ...) owned by the attribute catalog."""

    __tablename__ = "attributes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    name_ar: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Attribute(id={self.id}, name_en={self.name_en})>"


class AttributeValue(TimestampMixin, Base):
    """One selectable value of an attribute (Red, XL, ...)."""

    __tablename__ = "attribute_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attribute_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("attributes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value_en: Mapped[str] = mapped_column(String(200), nullable=False)
    value_ar: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<AttributeValue(id={self.id}, value_en={self.value_en})>"


class ProductAttribute(TimestampMixin, Base):
    """Binding of an attribute to a product, with the facets it controls."""

    __tablename__ = "product_attributes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("attributes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    controls_pricing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    controls_media: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    controls_weight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("product_id", "attribute_id", name="uq_product_attribute"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "attribute_id": self.attribute_id,
            "controls_pricing": self.controls_pricing,
            "controls_media": self.controls_media,
            "controls_weight": self.controls_weight,
        }


# ============================================================================
# Groups
# ============================================================================


class ProductPriceGroup(TimestampMixin, Base):
    """Price for one combination of pricing-controlling attribute values.

    A product without pricing attributes has a single group whose
    combination_key is the empty string.
    """

    __tablename__ = "product_price_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    combination_key: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sale_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_price_group_combination"),
    )

    def payload(self) -> dict[str, Any]:
        """Facet payload fields."""
        return {
            "cost": _decimal(self.cost),
            "price": _decimal(self.price),
            "sale_price": _decimal(self.sale_price),
        }


class ProductPriceGroupValue(Base):
    """One (attribute, value) pair defining a price group."""

    __tablename__ = "product_price_group_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("product_price_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[int] = mapped_column(Integer, ForeignKey("attributes.id"), nullable=False)
    attribute_value_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("attribute_values.id"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("group_id", "attribute_id", name="uq_price_group_value_attribute"),
    )


class ProductWeightGroup(TimestampMixin, Base):
    """Weight and dimensions for one combination of weight-controlling values."""

    __tablename__ = "product_weight_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    combination_key: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    weight: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    length: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    width: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    height: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_weight_group_combination"),
    )

    def payload(self) -> dict[str, Any]:
        """Facet payload fields."""
        return {
            "weight": _decimal(self.weight),
            "length": _decimal(self.length),
            "width": _decimal(self.width),
            "height": _decimal(self.height),
        }


class ProductWeightGroupValue(Base):
    """One (attribute, value) pair defining a weight group."""

    __tablename__ = "product_weight_group_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("product_weight_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[int] = mapped_column(Integer, ForeignKey("attributes.id"), nullable=False)
    attribute_value_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("attribute_values.id"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("group_id", "attribute_id", name="uq_weight_group_value_attribute"),
    )


class ProductMediaGroup(TimestampMixin, Base):
    """Key holder that media rows attach to; carries no payload of its own."""

    __tablename__ = "product_media_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    combination_key: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_media_group_combination"),
    )

    def payload(self) -> dict[str, Any]:
        """Media groups have no payload."""
        return {}


class ProductMediaGroupValue(Base):
    """One (attribute, value) pair defining a media group."""

    __tablename__ = "product_media_group_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("product_media_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[int] = mapped_column(Integer, ForeignKey("attributes.id"), nullable=False)
    attribute_value_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("attribute_values.id"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("group_id", "attribute_id", name="uq_media_group_value_attribute"),
    )


# ============================================================================
# Media
# ============================================================================


class MediaType(str, Enum):
    """Kinds of uploaded media."""

    IMAGE = "image"
    VIDEO = "video"


class Media(TimestampMixin, Base):
    """Uploaded media object.

    Rows are created by the upload service with no product link; the
    grouping engine links them to a product and a media group, reorders
    them, and unlinks them again.
    """

    __tablename__ = "media"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=MediaType.IMAGE.value)
    original_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    alt_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=True,
    )
    media_group_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("product_media_groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_group_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_media_product_sort", "product_id", "sort_order"),
        # One primary image per product
        Index(
            "uq_media_product_primary",
            "product_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary"),
        ),
    )

    def unlink(self) -> None:
        """Detach from product and group and reset ordering flags."""
        self.product_id = None
        self.media_group_id = None
        self.is_primary = False
        self.is_group_primary = False
        self.sort_order = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "type": self.type,
            "alt_text": self.alt_text,
            "product_id": self.product_id,
            "media_group_id": self.media_group_id,
            "sort_order": self.sort_order,
            "is_primary": self.is_primary,
            "is_group_primary": self.is_group_primary,
        }


# ============================================================================
# Variants & Stock
# ============================================================================


class ProductVariant(TimestampMixin, Base):
    """One full combination of a product's attribute values."""

    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    combination_key: Mapped[str] = mapped_column(String(1000), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_variant_combination"),
        Index("idx_product_variants_product_active", "product_id", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<ProductVariant(id={self.id}, combination={self.combination_key})>"


class ProductVariantCombination(Base):
    """One (attribute, value) pair of a variant's full combination."""

    __tablename__ = "product_variant_combinations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    variant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[int] = mapped_column(Integer, ForeignKey("attributes.id"), nullable=False)
    attribute_value_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("attribute_values.id"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("variant_id", "attribute_value_id", name="uq_variant_attribute_value"),
    )


class ProductStock(TimestampMixin, Base):
    """Stock row for a variant, or for the product itself when variant_id is NULL."""

    __tablename__ = "product_stock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    is_out_of_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("product_id", "variant_id", name="uq_product_variant_stock"),
        # NULLs are distinct in the constraint above, so the simple row needs its own index
        Index(
            "uq_product_simple_stock",
            "product_id",
            unique=True,
            postgresql_where=text("variant_id IS NULL"),
            sqlite_where=text("variant_id IS NULL"),
        ),
    )

    @property
    def available_quantity(self) -> int:
        """Quantity that can still be sold."""
        return max(self.quantity - self.reserved_quantity, 0)

    @property
    def is_low_stock(self) -> bool:
        """True when available stock is at or under the threshold."""
        return self.available_quantity <= self.low_stock_threshold

    def refresh_out_of_stock(self) -> None:
        """Recompute the derived out-of-stock flag."""
        self.is_out_of_stock = self.available_quantity <= 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_out_of_stock": self.is_out_of_stock,
        }


class ProductCombinationStock(TimestampMixin, Base):
    """Free-form stock keyed by the full combination map.

    Older storefront clients read stock by combination rather than by
    variant id; these rows are reconciled together with variant stock.
    """

    __tablename__ = "product_combination_stock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    combination: Mapped[dict[str, int]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )
    combination_key: Mapped[str] = mapped_column(String(1000), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("product_id", "combination_key", name="uq_combination_stock"),
    )
