"""promotion voting tables

Revision ID: 0001_promotion_voting
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_promotion_voting"
down_revision = None
branch_labels = None
depends_on = None

promotion_status_type = sa.Enum("OPEN", "PASSED", "FAILED", "EXPIRED", name="promotion_status_type")
vote_choice_type = sa.Enum("AGREE", "DISAGREE", name="vote_choice_type")
outbox_status_type = sa.Enum("PENDING", "DONE", "FAILED", name="outbox_status_type")


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("employee_id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("store_name", sa.String(100), nullable=False),
        sa.Column("position", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_employees_store_name", "employees", ["store_name"])

    op.create_table(
        "promotion_proposals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("applicant_id", sa.String(64), nullable=False),
        sa.Column("applicant_name", sa.String(100), nullable=False),
        sa.Column("store_name", sa.String(100), nullable=False),
        sa.Column("current_position", sa.String(50), nullable=False),
        sa.Column("target_position", sa.String(50), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("vote_duration_days", sa.Integer(), nullable=False),
        sa.Column("initiated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", promotion_status_type, nullable=False),
        sa.Column("agree_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("disagree_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qualified_voter_count", sa.Integer(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("agree_count >= 0", name="ck_promotion_proposals_agree_count"),
        sa.CheckConstraint("disagree_count >= 0", name="ck_promotion_proposals_disagree_count"),
        sa.CheckConstraint("qualified_voter_count > 0", name="ck_promotion_proposals_qualified_count"),
        sa.CheckConstraint("vote_duration_days BETWEEN 1 AND 30", name="ck_promotion_proposals_duration"),
    )
    op.create_index(
        "uq_promotion_proposals_open_applicant",
        "promotion_proposals",
        ["applicant_id"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
        sqlite_where=sa.text("status = 'OPEN'"),
    )
    op.create_index("idx_promotion_proposals_status_deadline", "promotion_proposals", ["status", "deadline"])
    op.create_index("idx_promotion_proposals_store_name", "promotion_proposals", ["store_name"])

    op.create_table(
        "promotion_qualified_voters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "proposal_id",
            sa.Uuid(),
            sa.ForeignKey("promotion_proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("position", sa.String(50), nullable=False),
        sa.UniqueConstraint("proposal_id", "employee_id", name="uq_promotion_qualified_voters_proposal_employee"),
    )
    op.create_index("idx_promotion_qualified_voters_employee_id", "promotion_qualified_voters", ["employee_id"])

    op.create_table(
        "promotion_votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "proposal_id",
            sa.Uuid(),
            sa.ForeignKey("promotion_proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("voter_id", sa.String(64), nullable=False),
        sa.Column("voter_name", sa.String(100), nullable=False),
        sa.Column("choice", vote_choice_type, nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("voter_position", sa.String(50), nullable=True),
        sa.Column("voter_store", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("proposal_id", "voter_id", name="uq_promotion_votes_proposal_voter"),
        sa.CheckConstraint("comment IS NULL OR length(comment) <= 500", name="ck_promotion_votes_comment_length"),
    )
    op.create_index("idx_promotion_votes_proposal_id", "promotion_votes", ["proposal_id"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("proposal_id", sa.Uuid(), nullable=True),
        sa.Column("status", outbox_status_type, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_channels", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_outbox_status_next_retry", "outbox_events", ["status", "next_retry_at"])
    op.create_index("idx_outbox_event_type", "outbox_events", ["event_type"])


def downgrade() -> None:
    op.drop_table("outbox_events")
    op.drop_table("promotion_votes")
    op.drop_table("promotion_qualified_voters")
    op.drop_table("promotion_proposals")
    op.drop_table("employees")

    bind = op.get_bind()
    outbox_status_type.drop(bind, checkfirst=True)
    vote_choice_type.drop(bind, checkfirst=True)
    promotion_status_type.drop(bind, checkfirst=True)
