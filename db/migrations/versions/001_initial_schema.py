"""Initial schema: questions, settings_config, job_logs, rate_limit_config, api_stats.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ─── Questions ───────────────────────────────────────────────────────────

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("question_id", sa.Text, nullable=False),
        sa.Column("customer_id", sa.Text, nullable=False),
        sa.Column("product_main_id", sa.Text, nullable=False),
        sa.Column("product_name", sa.Text, nullable=False),
        sa.Column("product_web_url", sa.Text, nullable=True),
        sa.Column("question_text", sa.Text, nullable=False),
        sa.Column("question_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_public", sa.Boolean, nullable=True),
        sa.Column("chatbase_conversation_id", sa.Text, nullable=True),
        sa.Column("is_chatbase_unknown_answer", sa.Boolean, nullable=True),
        sa.Column("answer_id", sa.Text, nullable=True),
        sa.Column("answer_text", sa.Text, nullable=True),
        sa.Column("answer_text_edited", sa.Text, nullable=True),
        sa.Column("answer_type", sa.Text, nullable=True),
        sa.Column("answer_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("is_follow_up", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("needs_approval", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("approved", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("success", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "answer_type IS NULL OR answer_type IN ('PROVIDER', 'AUTOMATIC', 'MANUAL', '')",
            name="ck_question_answer_type",
        ),
        sa.UniqueConstraint("question_id", name="uq_question_question_id"),
    )
    op.create_index("ix_questions_customer_id", "questions", ["customer_id"])
    op.create_index("ix_questions_product_main_id", "questions", ["product_main_id"])

    # ─── Scheduling ──────────────────────────────────────────────────────────

    op.create_table(
        "settings_config",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("automatic_answer", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("start_time", sa.Text, nullable=True),
        sa.Column("end_time", sa.Text, nullable=True),
        sa.Column("weekdays", sa.Text, nullable=True),
        sa.Column("time_zone", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "job_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("state", sa.Text, nullable=True),
        sa.Column("result", sa.Text, nullable=True),
        sa.Column("running_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "state IS NULL OR state IN ('running', 'completed', 'failed')",
            name="ck_job_log_state",
        ),
    )

    # ─── Outbound API bookkeeping ────────────────────────────────────────────

    op.create_table(
        "rate_limit_config",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("endpoint", sa.Text, nullable=False),
        sa.Column("requests_per_minute", sa.Integer, nullable=False),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("endpoint", name="uq_rate_limit_config_endpoint"),
    )

    op.create_table(
        "api_stats",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("endpoint", sa.Text, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("response_time", sa.Integer, nullable=False),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("rate_limit_remaining", sa.Integer, nullable=True),
        sa.Column("rate_limit_reset", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_stats_endpoint", "api_stats", ["endpoint"])


def downgrade() -> None:
    op.drop_index("ix_api_stats_endpoint", table_name="api_stats")
    op.drop_table("api_stats")
    op.drop_table("rate_limit_config")
    op.drop_table("job_logs")
    op.drop_table("settings_config")
    op.drop_index("ix_questions_product_main_id", table_name="questions")
    op.drop_index("ix_questions_customer_id", table_name="questions")
    op.drop_table("questions")
