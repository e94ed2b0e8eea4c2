"""add security_scan and security_finding tables

Revision ID: s1_security_scans
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = 's1_security_scans'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── Create security_scan table ──
    op.create_table(
        'security_scan',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('target_url', sa.String(2048), nullable=False),
        sa.Column('scan_type', sa.String(20), nullable=False, server_default='full'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('security_score', sa.Integer(), nullable=True),
        sa.Column('summary_json', sa.JSON(), nullable=True),
        sa.Column('results_json', sa.JSON(), nullable=True),
        sa.Column('recommendations_json', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.String(500), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_security_scan_status', 'security_scan', ['status'])
    op.create_index('ix_security_scan_started_at', 'security_scan', ['started_at'])

    # ── Create security_finding table ──
    op.create_table(
        'security_finding',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('scan_id', sa.Integer(), sa.ForeignKey('security_scan.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False, server_default='info'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.String(2000), nullable=False, server_default=''),
        sa.Column('evidence', sa.String(2000), nullable=True),
        sa.Column('recommendation', sa.String(2000), nullable=True),
        sa.Column('owasp_category', sa.String(10), nullable=True),
        sa.Column('cwe_id', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_security_finding_scan_id', 'security_finding', ['scan_id'])


def downgrade():
    op.drop_index('ix_security_finding_scan_id', table_name='security_finding')
    op.drop_table('security_finding')

    op.drop_index('ix_security_scan_started_at', table_name='security_scan')
    op.drop_index('ix_security_scan_status', table_name='security_scan')
    op.drop_table('security_scan')
