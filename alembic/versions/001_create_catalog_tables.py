"""Create catalog, group, media, variant and stock tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    ]


def _product_fk() -> sa.Column:
    return sa.Column(
        'product_id', sa.Integer(),
        sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True,
    )


def _group_values_table(name: str, group_table: str, constraint: str) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('group_id', sa.Integer(),
                  sa.ForeignKey(f'{group_table}.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('attribute_id', sa.Integer(), sa.ForeignKey('attributes.id'), nullable=False),
        sa.Column('attribute_value_id', sa.Integer(),
                  sa.ForeignKey('attribute_values.id'), nullable=False, index=True),
        sa.UniqueConstraint('group_id', 'attribute_id', name=constraint),
    )


def upgrade() -> None:
    """Create catalog tables."""
    # Products and the attribute catalog
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(100), nullable=False, unique=True),
        sa.Column('name_en', sa.String(500), nullable=False),
        sa.Column('name_ar', sa.String(500), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'attributes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name_en', sa.String(200), nullable=False, unique=True),
        sa.Column('name_ar', sa.String(200), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'attribute_values',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('attribute_id', sa.Integer(),
                  sa.ForeignKey('attributes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('value_en', sa.String(200), nullable=False),
        sa.Column('value_ar', sa.String(200), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
    )

    op.create_table(
        'product_attributes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('attribute_id', sa.Integer(),
                  sa.ForeignKey('attributes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('controls_pricing', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('controls_media', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('controls_weight', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'attribute_id', name='uq_product_attribute'),
    )

    # Groups
    op.create_table(
        'product_price_groups',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('combination_key', sa.String(1000), nullable=False, server_default=''),
        sa.Column('cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'combination_key', name='uq_price_group_combination'),
    )
    _group_values_table('product_price_group_values', 'product_price_groups',
                        'uq_price_group_value_attribute')

    op.create_table(
        'product_weight_groups',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('combination_key', sa.String(1000), nullable=False, server_default=''),
        sa.Column('weight', sa.Numeric(10, 2), nullable=False),
        sa.Column('length', sa.Numeric(10, 2), nullable=True),
        sa.Column('width', sa.Numeric(10, 2), nullable=True),
        sa.Column('height', sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'combination_key', name='uq_weight_group_combination'),
    )
    _group_values_table('product_weight_group_values', 'product_weight_groups',
                        'uq_weight_group_value_attribute')

    op.create_table(
        'product_media_groups',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('combination_key', sa.String(1000), nullable=False, server_default=''),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'combination_key', name='uq_media_group_combination'),
    )
    _group_values_table('product_media_group_values', 'product_media_groups',
                        'uq_media_group_value_attribute')

    # Media
    op.create_table(
        'media',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('url', sa.String(500), nullable=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='image'),
        sa.Column('original_name', sa.String(255), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('alt_text', sa.Text(), nullable=True),
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=True),
        sa.Column('media_group_id', sa.Integer(),
                  sa.ForeignKey('product_media_groups.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_group_primary', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
    )
    op.create_index('idx_media_product_sort', 'media', ['product_id', 'sort_order'])
    op.create_index(
        'uq_media_product_primary', 'media', ['product_id'],
        unique=True, postgresql_where=sa.text('is_primary'),
    )

    # Variants and stock
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('combination_key', sa.String(1000), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'combination_key', name='uq_variant_combination'),
    )
    op.create_index('idx_product_variants_product_active', 'product_variants', ['product_id', 'is_active'])

    op.create_table(
        'product_variant_combinations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('variant_id', sa.Integer(),
                  sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('attribute_id', sa.Integer(), sa.ForeignKey('attributes.id'), nullable=False),
        sa.Column('attribute_value_id', sa.Integer(),
                  sa.ForeignKey('attribute_values.id'), nullable=False, index=True),
        sa.UniqueConstraint('variant_id', 'attribute_value_id', name='uq_variant_attribute_value'),
    )

    op.create_table(
        'product_stock',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('variant_id', sa.Integer(),
                  sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_out_of_stock', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'variant_id', name='uq_product_variant_stock'),
    )
    op.create_index(
        'uq_product_simple_stock', 'product_stock', ['product_id'],
        unique=True, postgresql_where=sa.text('variant_id IS NULL'),
    )

    op.create_table(
        'product_combination_stock',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _product_fk(),
        sa.Column('combination', postgresql.JSONB(), nullable=False),
        sa.Column('combination_key', sa.String(1000), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'combination_key', name='uq_combination_stock'),
    )


def downgrade() -> None:
    """Drop catalog tables."""
    op.drop_table('product_combination_stock')
    op.drop_table('product_stock')
    op.drop_table('product_variant_combinations')
    op.drop_table('product_variants')
    op.drop_table('media')
    op.drop_table('product_media_group_values')
    op.drop_table('product_media_groups')
    op.drop_table('product_weight_group_values')
    op.drop_table('product_weight_groups')
    op.drop_table('product_price_group_values')
    op.drop_table('product_price_groups')
    op.drop_table('product_attributes')
    op.drop_table('attribute_values')
    op.drop_table('attributes')
    op.drop_table('products')
