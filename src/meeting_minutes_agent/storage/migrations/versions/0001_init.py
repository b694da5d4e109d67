"""
Инициальная миграция.

Создаёт таблицы:
- users
- meetings
- transcripts
- tasks
- attendance
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("role", _enum("userrole", "admin", "secretary", "official"), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "meetings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("datetime", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            _enum("meetingstatus", "scheduled", "in-progress", "completed", "rescheduled", "cancelled"),
            nullable=False,
        ),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("transcript_id", sa.Integer(), nullable=True),
        sa.Column("participants", sa.JSON(), nullable=True),
        sa.Column("qr_code_token", sa.String(length=64), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_meetings_status_datetime", "meetings", ["status", "datetime"], unique=False)

    op.create_table(
        "transcripts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "meeting_id", sa.Integer(), sa.ForeignKey("meetings.id"), nullable=False, unique=True
        ),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("summary_text", sa.Text(), nullable=True),
        sa.Column("summary_json", sa.JSON(), nullable=True),
        sa.Column("action_items_json", sa.JSON(), nullable=True),
        sa.Column("minutes_formatted", sa.Text(), nullable=True),
        sa.Column("audio_mime_type", sa.String(length=64), nullable=True),
        sa.Column(
            "processing_status",
            _enum("processingstatus", "pending", "processing", "completed", "failed"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("meeting_id", sa.Integer(), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("deadline", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            _enum("taskstatus", "pending", "in-progress", "completed", "overdue", "cancelled"),
            nullable=False,
        ),
        sa.Column("priority", _enum("taskpriority", "low", "medium", "high"), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tasks_meeting", "tasks", ["meeting_id"], unique=False)

    op.create_table(
        "attendance",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("meeting_id", sa.Integer(), sa.ForeignKey("meetings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("check_in_method", _enum("checkinmethod", "qr", "manual"), nullable=False),
        sa.Column("status", _enum("attendancestatus", "present", "late", "absent"), nullable=False),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_attendance_meeting_user"),
    )


def downgrade() -> None:
    op.drop_table("attendance")
    op.drop_index("ix_tasks_meeting", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("transcripts")
    op.drop_index("ix_meetings_status_datetime", table_name="meetings")
    op.drop_table("meetings")
    op.drop_table("users")
