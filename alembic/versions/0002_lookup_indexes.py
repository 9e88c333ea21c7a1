"""lemma and index lookup indexes

Revision ID: 0002_lookup_indexes
Revises: 0001_initial_schema
Create Date: 2026-10-19 00:10:00
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_lookup_indexes"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_lemma_text ON lemma(lemma);
        CREATE INDEX IF NOT EXISTS idx_search_index_lemma ON search_index(lemma_id);
        """
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_search_index_lemma")
    op.execute("DROP INDEX IF EXISTS idx_lemma_text")
