"""Create accounts, ledger, referral, booking mirror and notification tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the points ledger schema."""
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('mobile_number', sa.String(32), nullable=True),
        sa.Column('mobile_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('mobile_verified_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('confirmed_balance >= 0', name='ck_accounts_balance_non_negative'),
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'])
    op.create_index('ix_accounts_mobile_number', 'accounts', ['mobile_number'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('booking_id', sa.String(64), nullable=True),
        sa.Column('review_id', sa.String(64), nullable=True),
        sa.Column('referred_account_id', sa.String(64), nullable=True),
        sa.Column('idempotency_key', sa.String(200), nullable=False),
        sa.Column('note', sa.String(500), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('settled_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_ledger_entries_idempotency_key'),
        sa.CheckConstraint('delta != 0', name='ck_ledger_entries_delta_non_zero'),
    )
    op.create_index('ix_ledger_entries_account_created', 'ledger_entries', ['account_id', 'created_at'])
    op.create_index('ix_ledger_entries_status_created', 'ledger_entries', ['status', 'created_at'])
    op.create_index('ix_ledger_entries_booking', 'ledger_entries', ['booking_id'])

    op.create_table(
        'referral_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    # At most one active code per account
    op.create_index(
        'uq_referral_codes_one_active',
        'referral_codes',
        ['account_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.String(64), nullable=False),
        sa.Column('referee_id', sa.String(64), nullable=False),
        sa.Column('referral_code', sa.String(32), nullable=False),
        sa.Column('device_fingerprint', sa.String(128), nullable=True),
        sa.Column('payment_method_hash', sa.String(128), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['referee_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referee_id', name='uq_referrals_referee'),
    )
    op.create_index('ix_referrals_referrer', 'referrals', ['referrer_id'])
    op.create_index('ix_referrals_device_fingerprint', 'referrals', ['device_fingerprint'])
    op.create_index('ix_referrals_payment_method_hash', 'referrals', ['payment_method_hash'])

    op.create_table(
        'booking_records',
        sa.Column('booking_id', sa.String(64), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('disputed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('net_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('booking_id'),
    )
    op.create_index('ix_booking_records_account', 'booking_records', ['account_id', 'completed_at'])

    op.create_table(
        'notification_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notification_requests_undispatched', 'notification_requests', ['dispatched_at', 'created_at'])


def downgrade():
    """Drop the points ledger schema."""
    op.drop_index('ix_notification_requests_undispatched', table_name='notification_requests')
    op.drop_table('notification_requests')
    op.drop_index('ix_booking_records_account', table_name='booking_records')
    op.drop_table('booking_records')
    op.drop_index('ix_referrals_payment_method_hash', table_name='referrals')
    op.drop_index('ix_referrals_device_fingerprint', table_name='referrals')
    op.drop_index('ix_referrals_referrer', table_name='referrals')
    op.drop_table('referrals')
    op.drop_index('uq_referral_codes_one_active', table_name='referral_codes')
    op.drop_table('referral_codes')
    op.drop_index('ix_ledger_entries_booking', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_status_created', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_account_created', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_index('ix_accounts_mobile_number', table_name='accounts')
    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_table('accounts')
