"""Create generation jobs and vector embeddings tables.

Revision ID: 5a1c3e7b9d20
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5a1c3e7b9d20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "course_generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("roadmap_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("request_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("current_step", sa.String(), nullable=True),
    sa.Column("progress_percentage", sa.Integer(), nullable=False),
    sa.Column("current_section_index", sa.Integer(), nullable=True),
    sa.Column("current_subtopic_index", sa.Integer(), nullable=True),
    sa.Column("total_sections", sa.Integer(), nullable=False),
    sa.Column("total_subtopics", sa.Integer(), nullable=False),
    sa.Column("estimated_minutes_remaining", sa.Integer(), nullable=True),
    sa.Column("error_log", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("retry_count", sa.Integer(), nullable=False),
    sa.Column("max_retries", sa.Integer(), nullable=False),
    sa.Column("session_id", sa.String(), nullable=True),
    sa.Column("final_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("failure_reason", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), nullable=False),
    sa.Column("updated_at", sa.String(), nullable=False),
    sa.Column("started_at", sa.String(), nullable=True),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_course_generation_jobs_course_id"), "course_generation_jobs", ["course_id"], unique=False)
  op.create_index(op.f("ix_course_generation_jobs_roadmap_id"), "course_generation_jobs", ["roadmap_id"], unique=False)
  op.create_index(op.f("ix_course_generation_jobs_session_id"), "course_generation_jobs", ["session_id"], unique=False)
  op.create_index("ix_generation_jobs_status_created", "course_generation_jobs", ["status", "created_at"], unique=False)
  op.create_index("ux_generation_jobs_active_roadmap", "course_generation_jobs", ["roadmap_id"], unique=True, postgresql_where=sa.text("status IN ('pending', 'processing')"))

  op.create_table(
    "vector_embeddings",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("course_id", sa.String(), nullable=False),
    sa.Column("content_id", sa.String(), nullable=True),
    sa.Column("content_type", sa.String(), nullable=False),
    sa.Column("content_text", sa.Text(), nullable=False),
    sa.Column("embedding", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_vector_embeddings_course_id"), "vector_embeddings", ["course_id"], unique=False)
  op.create_index(op.f("ix_vector_embeddings_content_id"), "vector_embeddings", ["content_id"], unique=False)
  op.create_index("ix_vector_embeddings_course_active", "vector_embeddings", ["course_id", "content_type"], unique=False, postgresql_where=sa.text("is_active"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_vector_embeddings_course_active", table_name="vector_embeddings")
  op.drop_index(op.f("ix_vector_embeddings_content_id"), table_name="vector_embeddings")
  op.drop_index(op.f("ix_vector_embeddings_course_id"), table_name="vector_embeddings")
  op.drop_table("vector_embeddings")

  op.drop_index("ux_generation_jobs_active_roadmap", table_name="course_generation_jobs")
  op.drop_index("ix_generation_jobs_status_created", table_name="course_generation_jobs")
  op.drop_index(op.f("ix_course_generation_jobs_session_id"), table_name="course_generation_jobs")
  op.drop_index(op.f("ix_course_generation_jobs_roadmap_id"), table_name="course_generation_jobs")
  op.drop_index(op.f("ix_course_generation_jobs_course_id"), table_name="course_generation_jobs")
  op.drop_table("course_generation_jobs")
