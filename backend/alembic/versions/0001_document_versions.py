"""Create documents and document_versions tables

Revision ID: 0001_document_versions
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_document_versions'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create documents and their version log."""
    op.create_table(
        'documents',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('version_retention_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_published_version_id', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_documents_owner_id', 'documents', ['owner_id'])

    op.create_table(
        'document_versions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('doc_id', sa.BigInteger(), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('snapshot_url', sa.Text(), nullable=False),
        sa.Column('snapshot_sha256', sa.String(128), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('change_summary', sa.Text(), nullable=True),
        sa.Column('source', sa.String(16), nullable=False, server_default='auto'),
        sa.Column('content_text', sa.Text(), nullable=True),
        sa.Column('content_html', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['doc_id'], ['documents.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'ux_document_versions_doc_vn', 'document_versions',
        ['doc_id', 'version_number'], unique=True,
    )
    op.create_index('ix_document_versions_doc_sha256', 'document_versions', ['doc_id', 'snapshot_sha256'])
    op.create_index(
        'ix_document_versions_doc_source_vn', 'document_versions',
        ['doc_id', 'source', 'version_number'],
    )
    op.create_index('ix_document_versions_created_by', 'document_versions', ['created_by'])

    op.create_foreign_key(
        'fk_documents_last_published_version',
        'documents', 'document_versions',
        ['last_published_version_id'], ['id'],
        ondelete='SET NULL',
    )


def downgrade() -> None:
    """Drop the version log and documents."""
    op.drop_constraint('fk_documents_last_published_version', 'documents', type_='foreignkey')
    op.drop_index('ix_document_versions_created_by', table_name='document_versions')
    op.drop_index('ix_document_versions_doc_source_vn', table_name='document_versions')
    op.drop_index('ix_document_versions_doc_sha256', table_name='document_versions')
    op.drop_index('ux_document_versions_doc_vn', table_name='document_versions')
    op.drop_table('document_versions')
    op.drop_index('ix_documents_owner_id', table_name='documents')
    op.drop_table('documents')
