"""Initial schema: users, login, catalog, FIFO batches, ledger, reconciliation

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

Creates:
1. users, login_codes, session_tokens (passwordless login)
2. products, stock_batches (FIFO layers with optimistic version_id)
3. account_entries (append-only ledger, no balance column)
4. stock_adjustments, shortage_acknowledgements, shortage_contributions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. USERS / LOGIN
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table('login_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_login_codes_email_used', 'login_codes', ['email', 'used'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'], unique=False)
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'], unique=False)
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'], unique=False)
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. CATALOG / FIFO BATCHES
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('ean', sa.String(length=64), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('sale_price_cents', sa.Integer(), nullable=True),
        sa.Column('sale_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('price_cents > 0', name='ck_products_price_positive'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_ean', 'products', ['ean'], unique=True)
    op.create_index('ix_products_name', 'products', ['name'], unique=False)

    op.create_table('stock_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_batches_quantity_nonnegative'),
        sa.CheckConstraint('price_cents > 0', name='ck_stock_batches_price_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_batches_product_id', 'stock_batches', ['product_id'], unique=False)
    op.create_index('ix_stock_batches_product_created', 'stock_batches', ['product_id', 'created_at'], unique=False)

    # ==========================================================================
    # 3. LEDGER
    # ==========================================================================
    op.create_table('account_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_account_entries_user_id', 'account_entries', ['user_id'], unique=False)
    op.create_index('ix_account_entries_user_created', 'account_entries', ['user_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. RECONCILIATION / SHORTAGES
    # ==========================================================================
    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('expected_quantity', sa.Integer(), nullable=False),
        sa.Column('actual_quantity', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('is_write_off', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('actual_quantity >= 0', name='ck_stock_adjustments_actual_nonnegative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'], unique=False)
    op.create_index('ix_stock_adjustments_created', 'stock_adjustments', ['created_at'], unique=False)

    op.create_table('shortage_acknowledgements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('shortage_total', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sqlite_autoincrement=True,
    )

    op.create_table('shortage_contributions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['recorded_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_shortage_contributions_user_id', 'shortage_contributions', ['user_id'], unique=False)


def downgrade():
    op.drop_table('shortage_contributions')
    op.drop_table('shortage_acknowledgements')
    op.drop_index('ix_stock_adjustments_created', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_product_id', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')
    op.drop_index('ix_account_entries_user_created', table_name='account_entries')
    op.drop_index('ix_account_entries_user_id', table_name='account_entries')
    op.drop_table('account_entries')
    op.drop_index('ix_stock_batches_product_created', table_name='stock_batches')
    op.drop_index('ix_stock_batches_product_id', table_name='stock_batches')
    op.drop_table('stock_batches')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_index('ix_products_ean', table_name='products')
    op.drop_table('products')
    op.drop_table('session_tokens')
    op.drop_index('ix_login_codes_email_used', table_name='login_codes')
    op.drop_table('login_codes')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
