"""Initial schema: tenants, catalog, sales and FBR Digital Invoicing

1. Creates 'organizations' with the seller registration profile (NTN,
   business name, province, address) required on every FBR invoice
2. Creates 'customers', 'products', 'sales', 'sale_lines'
3. Creates 'fbr_configs' (one row per tenant) and the 'fbr_queue' retry queue

Revision ID: 20261017_fbr_core
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_fbr_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # STEP 1: Tenant root
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('ntn', sa.String(length=32), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('province', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    # ==========================================================================
    # STEP 2: Customers and products
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('ntn_cnic', sa.String(length=32), nullable=True),
        sa.Column('province', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('registration_type', sa.String(length=16), nullable=False, server_default='Unregistered'),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name='fk_customers_org'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_customers_org_id', 'customers', ['org_id'])
    op.create_index('ix_customers_org_active', 'customers', ['org_id', 'is_active'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('retail_price_cents', sa.Integer(), nullable=True),
        sa.Column('tax_category', sa.String(length=32), nullable=False, server_default='standard_rate'),
        sa.Column('hs_code', sa.String(length=16), nullable=True),
        sa.Column('unit_of_measure', sa.String(length=64), nullable=True),
        sa.Column('sro_schedule_no', sa.String(length=64), nullable=True),
        sa.Column('sro_item_serial_no', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name='fk_products_org'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sku', name='uq_products_org_sku')
    )
    op.create_index('ix_products_org_id', 'products', ['org_id'])
    op.create_index('ix_products_org_name', 'products', ['org_id', 'name'])

    # ==========================================================================
    # STEP 3: Sales (FBR sync state lives on the sale)
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fbr_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('fbr_invoice_number', sa.String(length=64), nullable=True),
        sa.Column('fbr_dated', sa.String(length=32), nullable=True),
        sa.Column('fbr_error', sa.Text(), nullable=True),
        sa.Column('fbr_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name='fk_sales_org'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_sales_customer'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'invoice_number', name='uq_sales_org_invoice_number')
    )
    op.create_index('ix_sales_org_id', 'sales', ['org_id'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_fbr_status', 'sales', ['fbr_status'])
    op.create_index('ix_sales_org_fbr_status', 'sales', ['org_id', 'fbr_status'])

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('retail_price_cents', sa.Integer(), nullable=True),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_sale_lines_sale'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_sale_lines_product'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])

    # ==========================================================================
    # STEP 4: FBR configuration and retry queue
    # ==========================================================================
    op.create_table('fbr_configs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('bearer_token_encrypted', sa.Text(), nullable=True),
        sa.Column('token_hint', sa.String(length=8), nullable=True),
        sa.Column('sandbox_mode', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name='fk_fbr_configs_org'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_fbr_configs_org')
    )
    op.create_index('ix_fbr_configs_org_id', 'fbr_configs', ['org_id'])

    op.create_table('fbr_queue',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('invoice_payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name='fk_fbr_queue_org'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_fbr_queue_sale'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_fbr_queue_org_id', 'fbr_queue', ['org_id'])
    op.create_index('ix_fbr_queue_sale_id', 'fbr_queue', ['sale_id'])
    op.create_index('ix_fbr_queue_status_created', 'fbr_queue', ['status', 'created_at'])
    op.create_index('ix_fbr_queue_org_status', 'fbr_queue', ['org_id', 'status'])


def downgrade():
    op.drop_index('ix_fbr_queue_org_status', table_name='fbr_queue')
    op.drop_index('ix_fbr_queue_status_created', table_name='fbr_queue')
    op.drop_index('ix_fbr_queue_sale_id', table_name='fbr_queue')
    op.drop_index('ix_fbr_queue_org_id', table_name='fbr_queue')
    op.drop_table('fbr_queue')

    op.drop_index('ix_fbr_configs_org_id', table_name='fbr_configs')
    op.drop_table('fbr_configs')

    op.drop_index('ix_sale_lines_sale_id', table_name='sale_lines')
    op.drop_table('sale_lines')

    op.drop_index('ix_sales_org_fbr_status', table_name='sales')
    op.drop_index('ix_sales_fbr_status', table_name='sales')
    op.drop_index('ix_sales_customer_id', table_name='sales')
    op.drop_index('ix_sales_org_id', table_name='sales')
    op.drop_table('sales')

    op.drop_index('ix_products_org_name', table_name='products')
    op.drop_index('ix_products_org_id', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_customers_org_active', table_name='customers')
    op.drop_index('ix_customers_org_id', table_name='customers')
    op.drop_table('customers')

    op.drop_index('ix_organizations_is_active', table_name='organizations')
    op.drop_index('ix_organizations_code', table_name='organizations')
    op.drop_table('organizations')
