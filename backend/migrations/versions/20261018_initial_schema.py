"""Initial schema: catalog, stock ledger, sales and refunds

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Stores, suppliers (with supplier_products association) and customers
2. Categories, brands, products, combo components and partial-set prices
3. Sales with items, payment history, refunds and refund items
4. Append-only stock ledger (stock_entries)
5. Audit ledger events
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PARTIES
    # ==========================================================================
    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_code'), ['code'], unique=True)

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('current_balance', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('suppliers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_suppliers_store_id'), ['store_id'], unique=False)
        batch_op.create_index('ix_suppliers_store_name', ['store_id', 'name'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('balance', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'phone', name='uq_customers_store_phone'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_store_id'), ['store_id'], unique=False)
        batch_op.create_index('ix_customers_name', ['name'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'parent_id', 'name', name='uq_categories_store_parent_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_categories_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_categories_parent_id'), ['parent_id'], unique=False)

    op.create_table('brands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'name', name='uq_brands_store_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('brands', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_brands_store_id'), ['store_id'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='SIMPLE'),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('subcategory_id', sa.Integer(), nullable=True),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('fabric_type', sa.String(length=64), nullable=True),
        sa.Column('pattern', sa.String(length=64), nullable=True),
        sa.Column('design_number', sa.String(length=64), nullable=True),
        sa.Column('collection_name', sa.String(length=128), nullable=True),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('piece_count', sa.String(length=32), nullable=True),
        sa.Column('warranty_months', sa.Integer(), nullable=True),
        sa.Column('base_unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('sell_by_unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('buying_price', sa.Numeric(precision=14, scale=4), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(precision=14, scale=4), nullable=False, server_default='0'),
        sa.Column('stock_level', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('min_stock_level', sa.Numeric(precision=12, scale=3), nullable=False, server_default='5'),
        sa.Column('total_meters', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('meters_per_unit', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('calculated_units', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_combo_meters', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('can_sell_separate', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_sell_partial_set', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['subcategory_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'sku', name='uq_products_store_sku'),
        sa.UniqueConstraint('store_id', 'barcode', name='uq_products_store_barcode'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)
        batch_op.create_index('ix_products_store_name', ['store_id', 'name'], unique=False)
        batch_op.create_index('ix_products_store_kind', ['store_id', 'kind'], unique=False)

    op.create_table('supplier_products',
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('supplier_id', 'product_id')
    )

    op.create_table('combo_components',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('meters', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('buying_price', sa.Numeric(precision=14, scale=4), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.Numeric(precision=14, scale=4), nullable=False, server_default='0'),
        sa.Column('stock_level', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'name', name='uq_combo_components_product_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('combo_components', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_combo_components_product_id'), ['product_id'], unique=False)

    op.create_table('partial_set_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('components', sa.JSON(), nullable=False),
        sa.Column('selling_price', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('partial_set_prices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_partial_set_prices_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 3. SALES & REFUNDS
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('sale_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('refunded_amount', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'invoice_number', name='uq_sales_store_invoice'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index('ix_sales_store_status_date', ['store_id', 'payment_status', 'sale_date'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('line_total', sa.Numeric(precision=24, scale=7), nullable=False),
        sa.Column('components', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_items_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_items_product_id'), ['product_id'], unique=False)

    op.create_table('sale_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('amount', sa.Numeric(precision=24, scale=7), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_payments_sale_id'), ['sale_id'], unique=False)

    op.create_table('sale_refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount', sa.Numeric(precision=24, scale=7), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('debt_reduction', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.Column('cash_payout', sa.Numeric(precision=24, scale=7), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_refunds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_refunds_sale_id'), ['sale_id'], unique=False)

    op.create_table('sale_refund_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('refund_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('amount', sa.Numeric(precision=24, scale=7), nullable=False),
        sa.ForeignKeyConstraint(['refund_id'], ['sale_refunds.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_refund_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_refund_items_refund_id'), ['refund_id'], unique=False)

    # ==========================================================================
    # 4. STOCK LEDGER (append-only)
    # ==========================================================================
    op.create_table('stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('entry_type', sa.String(length=16), nullable=False, server_default='INITIAL_STOCK'),
        sa.Column('component_name', sa.String(length=32), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('buying_price', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=24, scale=7), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('purchase_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('refund_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['refund_id'], ['sale_refunds.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_entries_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_entries_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_entries_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_entries_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_stock_entries_store_product_created', ['store_id', 'product_id', 'created_at'], unique=False)
        batch_op.create_index('ix_stock_entries_product_type', ['product_id', 'entry_type'], unique=False)
        batch_op.create_index('ix_stock_entries_purchase_date', ['purchase_date'], unique=False)

    # ==========================================================================
    # 5. AUDIT LEDGER
    # ==========================================================================
    op.create_table('ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_category', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=24, scale=7), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('ledger_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ledger_events_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_event_category'), ['event_category'], unique=False)
        batch_op.create_index(batch_op.f('ix_ledger_events_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_ledger_events_store_occurred', ['store_id', 'occurred_at'], unique=False)
        batch_op.create_index('ix_ledger_events_entity', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('stock_entries')
    op.drop_table('sale_refund_items')
    op.drop_table('sale_refunds')
    op.drop_table('sale_payments')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('partial_set_prices')
    op.drop_table('combo_components')
    op.drop_table('supplier_products')
    op.drop_table('products')
    op.drop_table('brands')
    op.drop_table('categories')
    op.drop_table('customers')
    op.drop_table('suppliers')
    op.drop_table('stores')
