"""documents: whole-document plain text artifact

Revision ID: 0002_document_text
Revises: 0001_initial
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = "0002_document_text"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column("documents", sa.Column("text_key", sa.String(), nullable=True))
    op.add_column("documents", sa.Column("text_char_count", sa.Integer(), nullable=True))


def downgrade():
    op.drop_column("documents", "text_char_count")
    op.drop_column("documents", "text_key")
