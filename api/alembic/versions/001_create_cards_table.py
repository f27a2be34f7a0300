"""Create cards table

Revision ID: 001_create_cards
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_cards'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'cards',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('card_id', sa.String(length=6), nullable=False),
        sa.Column('owner_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('content_hash', sa.String(), nullable=True),
        sa.Column('type', sa.String(), nullable=False, server_default='concept'),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('source', sa.String(), nullable=False, server_default=''),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('generated_by', sa.String(), nullable=False, server_default='rule-based'),
        sa.Column('provenance', sa.JSON(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        # One row per (owner, fingerprint); NULL fingerprints are not constrained
        sa.UniqueConstraint('owner_id', 'content_hash', name='uq_cards_owner_content_hash'),
    )
    op.create_index(op.f('ix_cards_card_id'), 'cards', ['card_id'], unique=True)
    op.create_index(op.f('ix_cards_owner_id'), 'cards', ['owner_id'], unique=False)
    op.create_index(op.f('ix_cards_content_hash'), 'cards', ['content_hash'], unique=False)
    op.create_index(op.f('ix_cards_created_at'), 'cards', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_cards_created_at'), table_name='cards')
    op.drop_index(op.f('ix_cards_content_hash'), table_name='cards')
    op.drop_index(op.f('ix_cards_owner_id'), table_name='cards')
    op.drop_index(op.f('ix_cards_card_id'), table_name='cards')
    op.drop_table('cards')
