"""pages, crawl_results and broken_links

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

page_status = sa.Enum('queued', 'running', 'done', 'error', 'stopped', name='pagestatus')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'pages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('status', page_status, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_pages_id'), 'pages', ['id'], unique=False)
    op.create_index(op.f('ix_pages_url'), 'pages', ['url'], unique=True)
    op.create_index(op.f('ix_pages_status'), 'pages', ['status'], unique=False)
    op.create_index(op.f('ix_pages_deleted_at'), 'pages', ['deleted_at'], unique=False)
    op.create_index('idx_pages_status_deleted', 'pages', ['status', 'deleted_at'], unique=False)

    op.create_table(
        'crawl_results',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('page_id', sa.Integer(), nullable=False),
        sa.Column('html_version', sa.String(32), nullable=True),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('h1_count', sa.Integer(), nullable=False),
        sa.Column('h2_count', sa.Integer(), nullable=False),
        sa.Column('h3_count', sa.Integer(), nullable=False),
        sa.Column('h4_count', sa.Integer(), nullable=False),
        sa.Column('h5_count', sa.Integer(), nullable=False),
        sa.Column('h6_count', sa.Integer(), nullable=False),
        sa.Column('internal_links', sa.Integer(), nullable=False),
        sa.Column('external_links', sa.Integer(), nullable=False),
        sa.Column('has_login_form', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['page_id'], ['pages.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_crawl_results_id'), 'crawl_results', ['id'], unique=False)
    op.create_index(op.f('ix_crawl_results_page_id'), 'crawl_results', ['page_id'], unique=True)

    op.create_table(
        'broken_links',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('crawl_result_id', sa.Integer(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['crawl_result_id'], ['crawl_results.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_broken_links_id'), 'broken_links', ['id'], unique=False)
    op.create_index(op.f('ix_broken_links_crawl_result_id'), 'broken_links', ['crawl_result_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_broken_links_crawl_result_id'), table_name='broken_links')
    op.drop_index(op.f('ix_broken_links_id'), table_name='broken_links')
    op.drop_table('broken_links')

    op.drop_index(op.f('ix_crawl_results_page_id'), table_name='crawl_results')
    op.drop_index(op.f('ix_crawl_results_id'), table_name='crawl_results')
    op.drop_table('crawl_results')

    op.drop_index('idx_pages_status_deleted', table_name='pages')
    op.drop_index(op.f('ix_pages_deleted_at'), table_name='pages')
    op.drop_index(op.f('ix_pages_status'), table_name='pages')
    op.drop_index(op.f('ix_pages_url'), table_name='pages')
    op.drop_index(op.f('ix_pages_id'), table_name='pages')
    op.drop_table('pages')
    page_status.drop(op.get_bind(), checkfirst=True)
