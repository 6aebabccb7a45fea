"""create catalog and account stats tables

Revision ID: 1a7c9e2f4b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c9e2f4b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('games_won', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_guesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('watched_anime_ids', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'franchise',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('genres', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'anime',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('alt_names', sa.Text(), nullable=True),
        sa.Column('season_year', sa.Integer(), nullable=True),
        sa.Column('popularity', sa.Integer(), nullable=True),
        sa.Column('cover_image', sa.String(length=512), nullable=True),
        sa.Column('site_url', sa.String(length=512), nullable=True),
        sa.Column('franchise_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['franchise_id'], ['franchise.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_anime_name', 'anime', ['name'], unique=False)

    op.create_table(
        'song',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('artist', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('difficulty', sa.String(length=16), nullable=True),
        sa.Column('video_key', sa.String(length=255), nullable=False),
        sa.Column('download_status', sa.String(length=32), nullable=False),
        sa.Column('anime_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['anime_id'], ['anime.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_song_anime_id', 'song', ['anime_id'], unique=False)

    op.create_table(
        'song_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('song_id', sa.Integer(), nullable=False),
        sa.Column('listened_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['song_id'], ['song.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'song_id', name='uq_song_history_user_song'),
    )
    op.create_index('ix_song_history_user_id', 'song_history', ['user_id'], unique=False)


def downgrade():
    op.drop_index('ix_song_history_user_id', table_name='song_history')
    op.drop_table('song_history')
    op.drop_index('ix_song_anime_id', table_name='song')
    op.drop_table('song')
    op.drop_index('ix_anime_name', table_name='anime')
    op.drop_table('anime')
    op.drop_table('franchise')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
