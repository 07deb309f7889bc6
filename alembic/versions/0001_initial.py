"""documents, markdown_chunks, text_chunks

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("source_key", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="uploaded"),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("markdown_chunk_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("text_chunk_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("raw_html_key", sa.String(), nullable=True),
        sa.Column("clean_html_key", sa.String(), nullable=True),
        sa.Column("markdown_key", sa.String(), nullable=True),
        sa.Column("markdown_text", sa.Text(), nullable=True),
        sa.Column("markdown_preview", sa.Text(), nullable=True),
        sa.Column("markdown_char_count", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("failed_stage", sa.String(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("html_converted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("markdown_converted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("text_extracted_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_documents_owner_id", "documents", ["owner_id"])
    op.create_index("ix_documents_status", "documents", ["status"])

    op.create_table(
        "markdown_chunks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("document_id", sa.Uuid(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("char_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("document_id", "chunk_index", name="uq_markdown_chunks_doc_index"),
    )
    op.create_index("ix_markdown_chunks_document_id", "markdown_chunks", ["document_id"])

    op.create_table(
        "text_chunks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("document_id", sa.Uuid(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("char_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("document_id", "page_number", "chunk_index", name="uq_text_chunks_doc_page_index"),
    )
    op.create_index("ix_text_chunks_document_id", "text_chunks", ["document_id"])


def downgrade():
    op.drop_index("ix_text_chunks_document_id", table_name="text_chunks")
    op.drop_table("text_chunks")
    op.drop_index("ix_markdown_chunks_document_id", table_name="markdown_chunks")
    op.drop_table("markdown_chunks")
    op.drop_index("ix_documents_status", table_name="documents")
    op.drop_index("ix_documents_owner_id", table_name="documents")
    op.drop_table("documents")
