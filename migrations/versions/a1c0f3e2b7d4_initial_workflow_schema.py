"""initial_workflow_schema

Creates the capstone workflow tables:
  - users                     : student / staff / admin directory
  - teams, team_members       : confirmed teams (one leader each)
  - team_join_requests        : invitation edges
  - guide_requests / expert_requests: mentorship request families
  - review_requests           : two-phase review slot proposals
  - scheduled_reviews, review_marks, review_marks_individual
  - weekly_progress, weekly_log_verifications, week_deadlines
  - student_queries           : member questions answered by the guide
  - email_logs                : notification audit

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: a1c0f3e2b7d4
Revises:
Create Date: 2026-10-19 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c0f3e2b7d4'
down_revision = None
branch_labels = None
depends_on = None


def _mentor_request_table(name: str):
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.String(length=20), nullable=False),
        sa.Column("staff_reg_num", sa.String(length=50), nullable=False),
        sa.Column("team_semester", sa.Integer(), nullable=False, comment="Semester track: 5 | 7"),
        sa.Column("project_name", sa.String(length=300), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False,
                  comment="interested | accept | reject"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notified", sa.Boolean(), nullable=True),
        sa.Column("assigned_by", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["staff_reg_num"], ["users.reg_num"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{name}_team_id", name, ["team_id"])
    op.create_index(f"ix_{name}_staff_reg_num", name, ["staff_reg_num"])
    op.create_index(f"ix_{name}_staff_status", name, ["staff_reg_num", "status", "team_semester"])


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("reg_num", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone_number", sa.String(length=30), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False,
                      comment="student | staff | admin"),
            sa.Column("department", sa.String(length=100), nullable=True),
            sa.Column("semester", sa.Integer(), nullable=True),
            sa.Column("available", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("unavailable_reason", sa.String(length=255), nullable=True),
            sa.Column("project_type", sa.String(length=20), nullable=True,
                      comment="internal | external"),
            sa.Column("company_name", sa.String(length=200), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_reg_num", "users", ["reg_num"], unique=True)

    # ── Teams ─────────────────────────────────────────────────────────────
    if "teams" not in existing:
        op.create_table(
            "teams",
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("semester", sa.Integer(), nullable=False),
            sa.Column("leader_reg_num", sa.String(length=50), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=True),
            sa.Column("expert_reg_num", sa.String(length=50), nullable=True),
            sa.Column("project_name", sa.String(length=300), nullable=True),
            sa.Column("project_type", sa.String(length=20), nullable=True),
            sa.Column("company_name", sa.String(length=200), nullable=True),
            sa.Column("cluster", sa.String(length=100), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("outcome", sa.Text(), nullable=True),
            sa.Column("hard_soft", sa.String(length=20), nullable=True),
            sa.Column("project_registered_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["leader_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["guide_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["expert_reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("team_id"),
        )
        op.create_index("ix_teams_leader_reg_num", "teams", ["leader_reg_num"])
        op.create_index("ix_teams_guide_reg_num", "teams", ["guide_reg_num"])
        op.create_index("ix_teams_expert_reg_num", "teams", ["expert_reg_num"])

    if "team_members" not in existing:
        op.create_table(
            "team_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("reg_num", sa.String(length=50), nullable=False),
            sa.Column("is_leader", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("reg_num"),
        )
        op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
        op.create_index(
            "uq_team_members_single_leader", "team_members", ["team_id"], unique=True,
            postgresql_where=sa.text("is_leader IS TRUE"),
            sqlite_where=sa.text("is_leader = 1"),
        )

    if "team_join_requests" not in existing:
        op.create_table(
            "team_join_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("from_reg_num", sa.String(length=50), nullable=False),
            sa.Column("to_reg_num", sa.String(length=50), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="interested | accept | reject"),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("team_id", sa.String(length=20), nullable=True),
            sa.Column("team_conformed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("notified", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["from_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["to_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_team_join_requests_from_reg_num", "team_join_requests", ["from_reg_num"])
        op.create_index("ix_team_join_requests_to_reg_num", "team_join_requests", ["to_reg_num"])
        op.create_index("ix_join_requests_pair", "team_join_requests", ["from_reg_num", "to_reg_num"])

    # ── Mentorship requests ───────────────────────────────────────────────
    if "guide_requests" not in existing:
        _mentor_request_table("guide_requests")
    if "expert_requests" not in existing:
        _mentor_request_table("expert_requests")

    # ── Reviews ───────────────────────────────────────────────────────────
    if "review_requests" not in existing:
        op.create_table(
            "review_requests",
            sa.Column("request_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("project_name", sa.String(length=300), nullable=True),
            sa.Column("team_lead", sa.String(length=50), nullable=False),
            sa.Column("review_title", sa.String(length=30), nullable=False),
            sa.Column("is_optional", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("review_date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=False),
            sa.Column("expert_reg_num", sa.String(length=50), nullable=False),
            sa.Column("guide_status", sa.String(length=20), nullable=False),
            sa.Column("expert_status", sa.String(length=20), nullable=False),
            sa.Column("guide_reason", sa.Text(), nullable=True),
            sa.Column("expert_reason", sa.Text(), nullable=True),
            sa.Column("guide_meeting_link", sa.String(length=500), nullable=True),
            sa.Column("expert_meeting_link", sa.String(length=500), nullable=True),
            sa.Column("file_ref", sa.String(length=500), nullable=False,
                      comment="Opaque stored-file path / URI"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["guide_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["expert_reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("request_id"),
            sqlite_autoincrement=True,
        )
        op.create_index("ix_review_requests_team_id", "review_requests", ["team_id"])
        op.create_index("ix_review_requests_guide_reg_num", "review_requests", ["guide_reg_num"])
        op.create_index("ix_review_requests_expert_reg_num", "review_requests", ["expert_reg_num"])

    if "scheduled_reviews" not in existing:
        op.create_table(
            "scheduled_reviews",
            sa.Column("review_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("source_request_id", sa.Integer(), nullable=True),
            sa.Column("project_name", sa.String(length=300), nullable=True),
            sa.Column("team_lead", sa.String(length=50), nullable=False),
            sa.Column("review_title", sa.String(length=30), nullable=False),
            sa.Column("review_date", sa.Date(), nullable=False),
            sa.Column("start_time", sa.Time(), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=False),
            sa.Column("expert_reg_num", sa.String(length=50), nullable=False),
            sa.Column("meeting_link", sa.String(length=500), nullable=True),
            sa.Column("file_ref", sa.String(length=500), nullable=True),
            sa.Column("attendance", sa.String(length=20), nullable=True, comment="present | absent"),
            sa.Column("end_time", sa.Time(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["guide_reg_num"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["expert_reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("review_id"),
            sa.UniqueConstraint("source_request_id"),
            sa.UniqueConstraint("team_id", "review_date", "start_time",
                                name="uq_scheduled_reviews_team_slot"),
        )
        op.create_index("ix_scheduled_reviews_team_id", "scheduled_reviews", ["team_id"])
        op.create_index("ix_scheduled_reviews_guide_reg_num", "scheduled_reviews", ["guide_reg_num"])
        op.create_index("ix_scheduled_reviews_expert_reg_num", "scheduled_reviews", ["expert_reg_num"])

    if "review_marks" not in existing:
        op.create_table(
            "review_marks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("review_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("review_title", sa.String(length=30), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=True),
            sa.Column("guide_scores", sa.JSON(), nullable=True),
            sa.Column("guide_total", sa.Integer(), nullable=True),
            sa.Column("guide_remarks", sa.Text(), nullable=True),
            sa.Column("guide_entered_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expert_reg_num", sa.String(length=50), nullable=True),
            sa.Column("expert_scores", sa.JSON(), nullable=True),
            sa.Column("expert_total", sa.Integer(), nullable=True),
            sa.Column("expert_remarks", sa.Text(), nullable=True),
            sa.Column("expert_entered_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["review_id"], ["scheduled_reviews.review_id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_id"),
        )
        op.create_index("ix_review_marks_team_id", "review_marks", ["team_id"])

    if "review_marks_individual" not in existing:
        op.create_table(
            "review_marks_individual",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("review_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("review_title", sa.String(length=30), nullable=False),
            sa.Column("student_reg_num", sa.String(length=50), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=True),
            sa.Column("guide_scores", sa.JSON(), nullable=True),
            sa.Column("guide_total", sa.Integer(), nullable=True),
            sa.Column("guide_remarks", sa.Text(), nullable=True),
            sa.Column("guide_entered_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expert_reg_num", sa.String(length=50), nullable=True),
            sa.Column("expert_scores", sa.JSON(), nullable=True),
            sa.Column("expert_total", sa.Integer(), nullable=True),
            sa.Column("expert_remarks", sa.Text(), nullable=True),
            sa.Column("expert_entered_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["review_id"], ["scheduled_reviews.review_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["student_reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_id", "student_reg_num", name="uq_individual_marks_review_student"),
        )
        op.create_index("ix_review_marks_individual_review_id", "review_marks_individual", ["review_id"])
        op.create_index("ix_review_marks_individual_team_id", "review_marks_individual", ["team_id"])

    # ── Weekly progress ───────────────────────────────────────────────────
    if "weekly_progress" not in existing:
        op.create_table(
            "weekly_progress",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("reg_num", sa.String(length=50), nullable=False),
            sa.Column("week_number", sa.Integer(), nullable=False),
            sa.Column("progress", sa.Text(), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id", "reg_num", "week_number",
                                name="uq_weekly_progress_member_week"),
        )
        op.create_index("ix_weekly_progress_team_id", "weekly_progress", ["team_id"])

    if "weekly_log_verifications" not in existing:
        op.create_table(
            "weekly_log_verifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("week_number", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="pending | accept | reject"),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("verified_by", sa.String(length=50), nullable=True),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id", "week_number", name="uq_log_verification_team_week"),
        )
        op.create_index("ix_weekly_log_verifications_team_id", "weekly_log_verifications", ["team_id"])

    if "week_deadlines" not in existing:
        op.create_table(
            "week_deadlines",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("week_number", sa.Integer(), nullable=False),
            sa.Column("deadline", sa.Date(), nullable=False),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id", "week_number", name="uq_week_deadline_team_week"),
        )
        op.create_index("ix_week_deadlines_team_id", "week_deadlines", ["team_id"])

    # ── Student queries ───────────────────────────────────────────────────
    if "student_queries" not in existing:
        op.create_table(
            "student_queries",
            sa.Column("query_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=20), nullable=False),
            sa.Column("project_name", sa.String(length=300), nullable=True),
            sa.Column("team_member", sa.String(length=50), nullable=False),
            sa.Column("guide_reg_num", sa.String(length=50), nullable=False),
            sa.Column("question", sa.Text(), nullable=False),
            sa.Column("reply", sa.Text(), nullable=True),
            sa.Column("replied_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["team_id"], ["teams.team_id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["team_member"], ["users.reg_num"]),
            sa.ForeignKeyConstraint(["guide_reg_num"], ["users.reg_num"]),
            sa.PrimaryKeyConstraint("query_id"),
        )
        op.create_index("ix_student_queries_team_id", "student_queries", ["team_id"])
        op.create_index("ix_student_queries_guide_reg_num", "student_queries", ["guide_reg_num"])

    # ── Notification audit ────────────────────────────────────────────────
    if "email_logs" not in existing:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=150), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True, comment="queued, sent, failed"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("entity_type", sa.String(length=40), nullable=True),
            sa.Column("entity_id", sa.String(length=40), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])


def downgrade():
    op.drop_table("email_logs")
    op.drop_table("student_queries")
    op.drop_table("week_deadlines")
    op.drop_table("weekly_log_verifications")
    op.drop_table("weekly_progress")
    op.drop_table("review_marks_individual")
    op.drop_table("review_marks")
    op.drop_table("scheduled_reviews")
    op.drop_table("review_requests")
    op.drop_table("expert_requests")
    op.drop_table("guide_requests")
    op.drop_table("team_join_requests")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("users")
