"""create_compliance_tables

Revision ID: 3f9c2b7d1e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2b7d1e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'time_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('clock_in', sa.DateTime(timezone=True), nullable=False),
        sa.Column('clock_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('break_minutes', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_time_entries_tenant_clock_in', 'time_entries', ['tenant_id', 'clock_in'])
    op.create_index('ix_time_entries_user_id', 'time_entries', ['user_id'])

    op.create_table(
        'time_account_adjustments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('amount_hours', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('reference_id', sa.String(length=255), nullable=True),
        sa.Column('source', sa.String(length=30), nullable=True),
        sa.Column('adjusted_by', sa.String(length=255), nullable=False),
        sa.Column('adjusted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_time_account_adjustments_user_id', 'time_account_adjustments', ['user_id'])

    op.create_table(
        'compliance_rules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('rule_set', sa.String(length=20), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id'),
    )

    op.create_table(
        'compliance_violations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('violation_type', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('rule_set', sa.String(length=20), nullable=False),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('dedup_key', sa.String(length=64), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_by', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_compliance_violations_tenant_detected', 'compliance_violations', ['tenant_id', 'detected_at'])
    op.create_index('ix_compliance_violations_dedup', 'compliance_violations', ['tenant_id', 'dedup_key'])
    op.create_index('ix_compliance_violations_user_id', 'compliance_violations', ['user_id'])

    op.create_table(
        'compliance_audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('actor_uid', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_compliance_audit_logs_tenant_ts', 'compliance_audit_logs', ['tenant_id', 'timestamp'])

    op.create_table(
        'compliance_reports',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('generated_by', sa.String(length=255), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('format', sa.String(length=10), nullable=False),
        sa.Column('rule_set', sa.String(length=20), nullable=False),
        sa.Column('filters', sa.JSON(), nullable=True),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('storage_path', sa.String(length=500), nullable=False),
        sa.Column('hash', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('compliance_reports')
    op.drop_index('ix_compliance_audit_logs_tenant_ts', table_name='compliance_audit_logs')
    op.drop_table('compliance_audit_logs')
    op.drop_index('ix_compliance_violations_user_id', table_name='compliance_violations')
    op.drop_index('ix_compliance_violations_dedup', table_name='compliance_violations')
    op.drop_index('ix_compliance_violations_tenant_detected', table_name='compliance_violations')
    op.drop_table('compliance_violations')
    op.drop_table('compliance_rules')
    op.drop_index('ix_time_account_adjustments_user_id', table_name='time_account_adjustments')
    op.drop_table('time_account_adjustments')
    op.drop_index('ix_time_entries_user_id', table_name='time_entries')
    op.drop_index('ix_time_entries_tenant_clock_in', table_name='time_entries')
    op.drop_table('time_entries')
    op.drop_table('tenants')
