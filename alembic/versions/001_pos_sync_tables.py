"""Create menu and POS sync tables

Revision ID: 001_pos_sync_tables
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_pos_sync_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    # Local menu
    op.create_table('menu_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_menu_categories_id'), 'menu_categories', ['id'], unique=False)
    op.create_index(op.f('ix_menu_categories_name'), 'menu_categories', ['name'], unique=False)
    op.create_index(op.f('ix_menu_categories_store_id'), 'menu_categories', ['store_id'], unique=False)

    op.create_table('menu_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('name_en', sa.String(length=200), nullable=True),
        sa.Column('name_ru', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('description_en', sa.Text(), nullable=True),
        sa.Column('description_ru', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('external_product_id', sa.String(length=64), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['menu_categories.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_menu_items_id'), 'menu_items', ['id'], unique=False)
    op.create_index(op.f('ix_menu_items_sku'), 'menu_items', ['sku'], unique=False)
    op.create_index(op.f('ix_menu_items_name'), 'menu_items', ['name'], unique=False)
    op.create_index(op.f('ix_menu_items_store_id'), 'menu_items', ['store_id'], unique=False)
    op.create_index(op.f('ix_menu_items_external_product_id'), 'menu_items',
                    ['external_product_id'], unique=False)
    op.create_index('ix_menu_items_external_store', 'menu_items',
                    ['external_product_id', 'store_id'], unique=False)

    # POS configuration registry
    op.create_table('pos_configurations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('config_name', sa.String(length=200), nullable=False),
        sa.Column('api_url', sa.String(length=500), nullable=False),
        sa.Column('api_login', sa.String(length=255), nullable=False),
        sa.Column('organization_id', sa.String(length=64), nullable=False),
        sa.Column('organization_name', sa.String(length=255), nullable=True),
        sa.Column('terminal_group_id', sa.String(length=64), nullable=True),
        sa.Column('terminal_group_name', sa.String(length=255), nullable=True),
        sa.Column('auto_sync_menu', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sync_interval_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('menu_revision', sa.Integer(), nullable=True),
        sa.Column('last_menu_sync_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('access_token', sa.String(length=1024), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_pos_configurations_id'), 'pos_configurations', ['id'], unique=False)
    op.create_index(op.f('ix_pos_configurations_is_active'), 'pos_configurations',
                    ['is_active'], unique=False)
    op.create_index(op.f('ix_pos_configurations_store_id'), 'pos_configurations',
                    ['store_id'], unique=False)
    op.create_index('ix_pos_configurations_store_active', 'pos_configurations',
                    ['store_id', 'is_active'], unique=False)

    op.create_table('pos_category_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_group_id', sa.String(length=64), nullable=False),
        sa.Column('external_group_name', sa.String(length=255), nullable=True),
        sa.Column('local_category_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_group_id', 'store_id',
                            name='uq_pos_category_mapping_group_store')
    )
    op.create_index(op.f('ix_pos_category_mappings_id'), 'pos_category_mappings', ['id'], unique=False)
    op.create_index(op.f('ix_pos_category_mappings_external_group_id'), 'pos_category_mappings',
                    ['external_group_id'], unique=False)
    op.create_index(op.f('ix_pos_category_mappings_store_id'), 'pos_category_mappings',
                    ['store_id'], unique=False)

    # Outbound order queue
    op.create_table('pos_order_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('order_data', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('next_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=36), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
        sa.CheckConstraint('retry_count <= max_retries', name='ck_pos_order_queue_retry_budget')
    )
    op.create_index(op.f('ix_pos_order_queue_id'), 'pos_order_queue', ['id'], unique=False)
    op.create_index(op.f('ix_pos_order_queue_order_id'), 'pos_order_queue', ['order_id'], unique=False)
    op.create_index(op.f('ix_pos_order_queue_order_number'), 'pos_order_queue',
                    ['order_number'], unique=False)
    op.create_index(op.f('ix_pos_order_queue_status'), 'pos_order_queue', ['status'], unique=False)
    op.create_index(op.f('ix_pos_order_queue_store_id'), 'pos_order_queue', ['store_id'], unique=False)
    op.create_index('ix_pos_order_queue_claim', 'pos_order_queue',
                    ['status', 'priority', 'created_at'], unique=False)

    # Sync audit records
    op.create_table('pos_order_sync_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('external_order_id', sa.String(length=64), nullable=True),
        sa.Column('external_number', sa.String(length=64), nullable=True),
        sa.Column('sync_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('sync_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('error_code', sa.String(length=50), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_pos_order_sync_order_number')
    )
    op.create_index(op.f('ix_pos_order_sync_records_id'), 'pos_order_sync_records', ['id'], unique=False)
    op.create_index(op.f('ix_pos_order_sync_records_order_id'), 'pos_order_sync_records',
                    ['order_id'], unique=False)
    op.create_index(op.f('ix_pos_order_sync_records_external_order_id'), 'pos_order_sync_records',
                    ['external_order_id'], unique=False)
    op.create_index(op.f('ix_pos_order_sync_records_sync_status'), 'pos_order_sync_records',
                    ['sync_status'], unique=False)

    op.create_table('pos_menu_sync_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('config_id', sa.Integer(), nullable=False),
        sa.Column('external_product_id', sa.String(length=64), nullable=False),
        sa.Column('external_product_name', sa.String(length=255), nullable=False),
        sa.Column('external_category_id', sa.String(length=64), nullable=True),
        sa.Column('external_category_name', sa.String(length=255), nullable=True),
        sa.Column('local_product_id', sa.Integer(), nullable=True),
        sa.Column('product_data', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_in_stop_list', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sync_at', sa.DateTime(), nullable=False),
        sa.Column('sync_status', sa.String(length=20), nullable=False, server_default='success'),
        sa.Column('store_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('config_id', 'external_product_id',
                            name='uq_pos_menu_sync_config_product')
    )
    op.create_index(op.f('ix_pos_menu_sync_records_id'), 'pos_menu_sync_records', ['id'], unique=False)
    op.create_index(op.f('ix_pos_menu_sync_records_config_id'), 'pos_menu_sync_records',
                    ['config_id'], unique=False)
    op.create_index(op.f('ix_pos_menu_sync_records_store_id'), 'pos_menu_sync_records',
                    ['store_id'], unique=False)


def downgrade():
    op.drop_table('pos_menu_sync_records')
    op.drop_table('pos_order_sync_records')
    op.drop_table('pos_order_queue')
    op.drop_table('pos_category_mappings')
    op.drop_table('pos_configurations')
    op.drop_table('menu_items')
    op.drop_table('menu_categories')
