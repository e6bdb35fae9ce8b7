"""initial_schema

Revision ID: 9c1f2ab4e7d0
Revises:
Create Date: 2026-10-18 09:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9c1f2ab4e7d0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

POST_STATUSES = [
    ('BORRADOR', 'Draft, only visible to its author'),
    ('REVISION', 'Waiting for moderator review'),
    ('ACTIVO', 'Approved and published in the feed'),
    ('RECHAZADO', 'Rejected by a moderator'),
    ('ELIMINADO', 'Deleted'),
]

USER_TYPES = [
    ('otro', 'Otro'),
    ('estudiante', 'Estudiante'),
    ('docente', 'Docente'),
    ('investigador', 'Investigador'),
    ('navegante', 'Navegante'),
    ('timonel', 'Timonel'),
    ('turista', 'Turista'),
    ('profesional', 'Profesional'),
]


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=30), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_admins_email', 'admins', ['email'], unique=True)
    op.create_index('ix_admins_username', 'admins', ['username'], unique=True)

    user_types = op.create_table(
        'user_types',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('public_name', sa.String(length=100), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_user_types_name', 'user_types', ['name'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('firebase_uid', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('username', sa.String(length=30), nullable=True),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('user_type_id', sa.Integer(), sa.ForeignKey('user_types.id', ondelete='SET NULL'), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('points >= 0', name='ck_users_points_non_negative'),
    )
    op.create_index('ix_users_firebase_uid', 'users', ['firebase_uid'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'species',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('how_to_recognise', sa.Text(), nullable=False),
        sa.Column('curious_info', sa.Text(), nullable=True),
        sa.Column('sighting_start_month', sa.Integer(), nullable=True),
        sa.Column('sighting_end_month', sa.Integer(), nullable=True),
        sa.Column('high_season_specimens', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('sighting_start_month BETWEEN 1 AND 12', name='ck_species_start_month'),
        sa.CheckConstraint('sighting_end_month BETWEEN 1 AND 12', name='ck_species_end_month'),
    )
    op.create_index('ix_species_name', 'species', ['name'], unique=True)

    post_status = op.create_table(
        'post_status',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=20), nullable=False, unique=True),
        sa.Column('description', sa.String(length=255), nullable=False, server_default=''),
    )

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), sa.ForeignKey('post_status.name'), nullable=False,
                  server_default='BORRADOR'),
        *_timestamps(),
    )
    op.create_index('ix_posts_user_id', 'posts', ['user_id'])
    op.create_index('ix_posts_status', 'posts', ['status'])

    op.create_table(
        'post_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_path', sa.String(length=500), nullable=False),
        sa.Column('image_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('latitude BETWEEN -90 AND 90', name='ck_post_images_latitude'),
        sa.CheckConstraint('longitude BETWEEN -180 AND 180', name='ck_post_images_longitude'),
    )
    op.create_index('ix_post_images_post_id', 'post_images', ['post_id'])

    # Seed lookup data
    op.bulk_insert(post_status, [{'name': name, 'description': desc} for name, desc in POST_STATUSES])
    op.bulk_insert(user_types, [{'name': name, 'public_name': public} for name, public in USER_TYPES])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('post_images')
    op.drop_table('posts')
    op.drop_table('post_status')
    op.drop_table('species')
    op.drop_table('users')
    op.drop_table('user_types')
    op.drop_table('admins')
