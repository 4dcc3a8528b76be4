"""create_book_generation_tables

Revision ID: 3f1c2a9d7b40
Revises:
Create Date: 2026-01-12 18:04:31.218337

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, matching SQLModel's default Enum mapping
book_status = sa.Enum(
    "DRAFT", "GENERATING", "PREVIEW_READY", "PAID", "COMPLETED", "FAILED", name="bookstatus"
)
age_band = sa.Enum("AGES_3_4", "AGES_5_6", "AGES_7_9", name="ageband")
tone = sa.Enum("GENTLE", "FUNNY", "BRAVE", name="tone")
page_type = sa.Enum("COVER", "CONTENT", "BACK", name="pagetype")
job_status = sa.Enum("QUEUED", "PROCESSING", "COMPLETED", "FAILED", name="jobstatus")
job_step = sa.Enum(
    "CHARACTER_SHEET", "STORY_TEXT", "COVER_IMAGE", "PAGE1_IMAGE", "COMPLETE", name="jobstep"
)


def upgrade() -> None:
    """Create books, book_pages and book_jobs tables."""
    op.create_table(
        "books",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("child_name", sa.String(length=32), nullable=False),
        sa.Column("age_band", age_band, nullable=False),
        sa.Column("interests", sa.JSON(), nullable=False),
        sa.Column("tone", tone, nullable=False),
        sa.Column("moral_lesson", sa.String(length=140), nullable=True),
        sa.Column("source_photo_path", sa.String(length=512), nullable=True),
        sa.Column("character_sheet_path", sa.String(length=512), nullable=True),
        sa.Column("cover_image_path", sa.String(length=512), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("status", book_status, nullable=False),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_books_status"), "books", ["status"], unique=False)

    op.create_table(
        "book_pages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("book_id", sa.Uuid(), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("page_type", page_type, nullable=False),
        sa.Column("story_text", sa.String(), nullable=True),
        sa.Column("illustration_prompt", sa.String(), nullable=True),
        sa.Column("illustration_path", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("book_id", "page_number", name="uq_book_pages_book_page"),
    )
    op.create_index(op.f("ix_book_pages_book_id"), "book_pages", ["book_id"], unique=False)

    op.create_table(
        "book_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("book_id", sa.Uuid(), nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("step", job_step, nullable=False),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["book_id"], ["books.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_book_jobs_book_id"), "book_jobs", ["book_id"], unique=False)
    op.create_index(op.f("ix_book_jobs_status"), "book_jobs", ["status"], unique=False)
    op.create_index(op.f("ix_book_jobs_created_at"), "book_jobs", ["created_at"], unique=False)


def downgrade() -> None:
    """Drop book generation tables and their enum types."""
    op.drop_index(op.f("ix_book_jobs_created_at"), table_name="book_jobs")
    op.drop_index(op.f("ix_book_jobs_status"), table_name="book_jobs")
    op.drop_index(op.f("ix_book_jobs_book_id"), table_name="book_jobs")
    op.drop_table("book_jobs")
    op.drop_index(op.f("ix_book_pages_book_id"), table_name="book_pages")
    op.drop_table("book_pages")
    op.drop_index(op.f("ix_books_status"), table_name="books")
    op.drop_table("books")

    bind = op.get_bind()
    for enum_type in (job_step, job_status, page_type, tone, age_band, book_status):
        enum_type.drop(bind, checkfirst=True)
