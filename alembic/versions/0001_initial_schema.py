"""Initial schema: accounts, sites, scans, scan tips, usage metrics.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("api_key", sa.String(128), nullable=False, unique=True),
        sa.Column("plan", sa.String(50), nullable=False, server_default="free"),
        *_timestamps(),
    )

    op.create_table(
        "sites",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.Uuid(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("url", sa.String(2000), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "url", name="uq_sites_account_url"),
    )
    op.create_index("ix_sites_account_id", "sites", ["account_id"])

    op.create_table(
        "scans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("site_id", sa.Uuid(), sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("schema_data", postgresql.JSONB(), nullable=False),
        sa.Column("performance", postgresql.JSONB(), nullable=False),
        sa.Column("crawlability_score", sa.Integer(), nullable=False),
        sa.Column("summarizability_score", sa.Integer(), nullable=False),
        sa.Column("findability_score", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_scans_site_id", "scans", ["site_id"])
    op.create_index("ix_scans_created_at", "scans", ["created_at"])

    op.create_table(
        "scan_tips",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("scan_id", sa.Uuid(), sa.ForeignKey("scans.id"), nullable=False),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_scan_tips_scan_id", "scan_tips", ["scan_id"])

    op.create_table(
        "usage_metrics",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.Uuid(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("scan_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "period_start", name="uq_usage_metrics_account_period"),
    )


def downgrade() -> None:
    op.drop_table("usage_metrics")
    op.drop_index("ix_scan_tips_scan_id", table_name="scan_tips")
    op.drop_table("scan_tips")
    op.drop_index("ix_scans_created_at", table_name="scans")
    op.drop_index("ix_scans_site_id", table_name="scans")
    op.drop_table("scans")
    op.drop_index("ix_sites_account_id", table_name="sites")
    op.drop_table("sites")
    op.drop_table("accounts")
