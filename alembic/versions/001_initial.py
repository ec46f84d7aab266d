"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    json_type = postgresql.JSONB(astext_type=sa.Text())

    # Plans table
    op.create_table(
        'plans',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('retailer_id', sa.String(length=64), nullable=False),
        sa.Column('brand_id', sa.String(length=128), nullable=True),
        sa.Column('retailer_name', sa.String(length=128), nullable=False),
        sa.Column('plan_name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('state', sa.String(length=16), nullable=False),
        sa.Column('fuel_type', sa.String(length=16), nullable=False),
        sa.Column('customer_type', sa.String(length=16), nullable=True),
        sa.Column('tariff_type', sa.String(length=16), nullable=False),
        sa.Column('plan_type', sa.String(length=16), nullable=False),
        sa.Column('distributors', json_type, nullable=True),
        sa.Column('included_postcodes', json_type, nullable=True),
        sa.Column('excluded_postcodes', json_type, nullable=True),
        sa.Column('daily_supply_charge', sa.Float(), nullable=False),
        sa.Column('single_rate', sa.Float(), nullable=True),
        sa.Column('peak_rate', sa.Float(), nullable=True),
        sa.Column('peak_times', json_type, nullable=True),
        sa.Column('shoulder_rate', sa.Float(), nullable=True),
        sa.Column('shoulder_times', json_type, nullable=True),
        sa.Column('off_peak_rate', sa.Float(), nullable=True),
        sa.Column('off_peak_times', json_type, nullable=True),
        sa.Column('feed_in_tariff', sa.Float(), nullable=True),
        sa.Column('has_battery_incentive', sa.Boolean(), nullable=False),
        sa.Column('battery_incentive_value', sa.Float(), nullable=True),
        sa.Column('has_vpp', sa.Boolean(), nullable=False),
        sa.Column('vpp_credit_per_year', sa.Float(), nullable=True),
        sa.Column('pay_on_time_discount', sa.Float(), nullable=True),
        sa.Column('direct_debit_discount', sa.Float(), nullable=True),
        sa.Column('connection_fee', sa.Float(), nullable=True),
        sa.Column('disconnection_fee', sa.Float(), nullable=True),
        sa.Column('late_payment_fee', sa.Float(), nullable=True),
        sa.Column('paper_bill_fee', sa.Float(), nullable=True),
        sa.Column('exit_fees', sa.Float(), nullable=True),
        sa.Column('discounts', json_type, nullable=True),
        sa.Column('incentives', json_type, nullable=True),
        sa.Column('fees', json_type, nullable=True),
        sa.Column('eligibility', json_type, nullable=True),
        sa.Column('green_power_details', json_type, nullable=True),
        sa.Column('controlled_loads', json_type, nullable=True),
        sa.Column('payment_options', json_type, nullable=True),
        sa.Column('bill_frequency', json_type, nullable=True),
        sa.Column('contract_length', sa.Integer(), nullable=True),
        sa.Column('cooling_off_days', sa.Integer(), nullable=True),
        sa.Column('on_expiry_description', sa.Text(), nullable=True),
        sa.Column('variation_terms', sa.Text(), nullable=True),
        sa.Column('green_power', sa.Boolean(), nullable=False),
        sa.Column('carbon_neutral', sa.Boolean(), nullable=False),
        sa.Column('is_ev_friendly', sa.Boolean(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=True),
        sa.Column('valid_to', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Tariff periods table
    op.create_table(
        'tariff_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('time_windows', json_type, nullable=True),
        sa.Column('sequence_order', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ondelete='CASCADE')
    )

    # Sync checkpoints table
    op.create_table(
        'sync_checkpoints',
        sa.Column('retailer_slug', sa.String(length=64), nullable=False),
        sa.Column('plan_ids', json_type, nullable=False),
        sa.Column('listed_updates', json_type, nullable=True),
        sa.Column('cursor_offset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('counts', json_type, nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('retailer_slug')
    )

    # Create indexes
    op.create_index('ix_plans_retailer_id', 'plans', ['retailer_id'])
    op.create_index('ix_plans_is_active', 'plans', ['is_active'])
    op.create_index('ix_tariff_periods_plan_id', 'tariff_periods', ['plan_id'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_tariff_periods_plan_id', table_name='tariff_periods')
    op.drop_index('ix_plans_is_active', table_name='plans')
    op.drop_index('ix_plans_retailer_id', table_name='plans')

    # Drop tables
    op.drop_table('sync_checkpoints')
    op.drop_table('tariff_periods')
    op.drop_table('plans')
