"""initial schema

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-19 00:00:00
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS site (
          id BIGSERIAL PRIMARY KEY,
          url TEXT UNIQUE NOT NULL,
          name TEXT NOT NULL,
          status TEXT NOT NULL CHECK (status IN ('INDEXING', 'INDEXED', 'FAILED')),
          last_error TEXT,
          status_time TIMESTAMPTZ NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS page (
          id BIGSERIAL PRIMARY KEY,
          site_id BIGINT NOT NULL REFERENCES site(id) ON DELETE CASCADE,
          path TEXT NOT NULL,
          code INT NOT NULL,
          content TEXT NOT NULL DEFAULT '',
          UNIQUE (site_id, path)
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS lemma (
          id BIGSERIAL PRIMARY KEY,
          site_id BIGINT NOT NULL REFERENCES site(id) ON DELETE CASCADE,
          lemma TEXT NOT NULL,
          frequency INT NOT NULL DEFAULT 0,
          UNIQUE (site_id, lemma)
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS search_index (
          page_id BIGINT NOT NULL REFERENCES page(id) ON DELETE CASCADE,
          lemma_id BIGINT NOT NULL REFERENCES lemma(id) ON DELETE CASCADE,
          rank INT NOT NULL,
          PRIMARY KEY (page_id, lemma_id)
        );
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS search_index")
    op.execute("DROP TABLE IF EXISTS lemma")
    op.execute("DROP TABLE IF EXISTS page")
    op.execute("DROP TABLE IF EXISTS site")
