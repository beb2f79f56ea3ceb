"""Initial schema: per-user list snapshots, feedback, preferences, batch cache, share links.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-02-02
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('mal_id', sa.BigInteger, primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('avatar_url', sa.String(500)),
        sa.Column('access_token', sa.Text),
        sa.Column('refresh_token', sa.Text),
        sa.Column('token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    # Replaced wholesale on every sync
    op.create_table(
        'user_list_entries',
        sa.Column('user_id', sa.BigInteger, primary_key=True),
        sa.Column('item_type', sa.String(10), primary_key=True),
        sa.Column('item_id', sa.Integer, primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('image_url', sa.String(500)),
        sa.Column('score', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.String(30)),
        sa.Column('genres', JSONB, nullable=False, server_default='[]'),
        sa.Column('synopsis', sa.Text),
        sa.Column('studios', JSONB, nullable=False, server_default='[]'),
        sa.Column('authors', JSONB, nullable=False, server_default='[]'),
        sa.Column('mean_score', sa.Float),
        sa.Column('popularity', sa.Integer),
        sa.Column('season', sa.String(10)),
        sa.Column('year', sa.Integer),
        sa.Column('num_episodes', sa.Integer),
        sa.Column('num_chapters', sa.Integer),
        sa.Column('num_volumes', sa.Integer),
        sa.Column('media_type', sa.String(30)),
        sa.Column('cached_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_list_entries_user_type', 'user_list_entries', ['user_id', 'item_type'])

    op.create_table(
        'user_feedback',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger, nullable=False),
        sa.Column('item_type', sa.String(10), nullable=False),
        sa.Column('item_id', sa.Integer, nullable=False),
        sa.Column('feedback_type', sa.String(10), nullable=False),
        sa.Column('rating', sa.Integer),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'item_type', 'item_id', name='uq_feedback_user_item'),
        sa.CheckConstraint("feedback_type IN ('like', 'dislike')", name='ck_feedback_type'),
    )
    op.create_index('idx_feedback_type_kind', 'user_feedback', ['item_type', 'feedback_type'])

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.BigInteger, primary_key=True),
        sa.Column('favorite_genres', JSONB, nullable=False, server_default='[]'),
        sa.Column('excluded_genres', JSONB, nullable=False, server_default='[]'),
        sa.Column('preferred_studios', JSONB, nullable=False, server_default='[]'),
        sa.Column('preferred_authors', JSONB, nullable=False, server_default='[]'),
        sa.Column('preferred_media_types', JSONB, nullable=False, server_default='[]'),
        sa.Column('min_score', sa.Float, nullable=False, server_default='7.0'),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    # One active batch per (user, type, mode)
    op.create_table(
        'recommendation_cache',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.BigInteger, nullable=False),
        sa.Column('item_type', sa.String(10), nullable=False),
        sa.Column('mode', sa.String(10), nullable=False),
        sa.Column('recommendations', JSONB, nullable=False),
        sa.Column('batch_metadata', JSONB, nullable=False, server_default='{}'),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'item_type', 'mode', name='uq_rec_cache_key'),
    )
    op.create_index('idx_rec_cache_expires', 'recommendation_cache', ['expires_at'])

    op.create_table(
        'shared_recommendations',
        sa.Column('share_code', sa.String(16), primary_key=True),
        sa.Column('item_type', sa.String(10), nullable=False),
        sa.Column('mode', sa.String(10), nullable=False),
        sa.Column('recommendations', JSONB, nullable=False),
        sa.Column('created_by', sa.BigInteger, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_shared_expires', 'shared_recommendations', ['expires_at'])


def downgrade() -> None:
    op.drop_index('idx_shared_expires', table_name='shared_recommendations')
    op.drop_table('shared_recommendations')
    op.drop_index('idx_rec_cache_expires', table_name='recommendation_cache')
    op.drop_table('recommendation_cache')
    op.drop_table('user_preferences')
    op.drop_index('idx_feedback_type_kind', table_name='user_feedback')
    op.drop_table('user_feedback')
    op.drop_index('idx_list_entries_user_type', table_name='user_list_entries')
    op.drop_table('user_list_entries')
    op.drop_table('users')
