"""Sprint engine schema.

Revision ID: 001_sprint_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = '001_sprint_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Needed for the equality operator on project_id inside the gist exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # Create enum types
    op.execute("CREATE TYPE sprint_status AS ENUM ('PLANNING', 'ACTIVE', 'COMPLETED')")
    op.execute("CREATE TYPE story_status AS ENUM ('TODO', 'IN_PROGRESS', 'DONE', 'BLOCKED')")
    op.execute("CREATE TYPE comment_type AS ENUM ('GENERAL', 'IMPEDIMENT', 'QUESTION', 'DECISION', 'ACTION_ITEM')")

    op.create_table(
        'sprints',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('goal', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', postgresql.ENUM(name='sprint_status', create_type=False), nullable=False, server_default='PLANNING'),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('velocity', sa.Integer(), nullable=True),
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('start_date < end_date', name='ck_sprints_date_order'),
        sa.CheckConstraint("(velocity IS NULL) = (status <> 'COMPLETED')", name='ck_sprints_velocity_iff_completed'),
    )
    op.create_index('ix_sprints_project_id', 'sprints', ['project_id'])

    # At most one ACTIVE sprint per project
    op.create_index(
        'uq_sprints_one_active_per_project',
        'sprints',
        ['project_id'],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    # No two open sprints of a project may share a calendar day
    op.execute(
        "ALTER TABLE sprints ADD CONSTRAINT ex_sprints_no_overlap "
        "EXCLUDE USING gist (project_id WITH =, daterange(start_date, end_date, '[]') WITH &&) "
        "WHERE (status IN ('PLANNING', 'ACTIVE'))"
    )

    op.create_table(
        'stories',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('title', sa.String(500), nullable=False, server_default=''),
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('sprint_id', sa.String(36), sa.ForeignKey('sprints.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', postgresql.ENUM(name='story_status', create_type=False), nullable=False, server_default='TODO'),
        sa.Column('story_points', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stories_project_id', 'stories', ['project_id'])
    op.create_index('ix_stories_sprint_id', 'stories', ['sprint_id'])

    op.create_table(
        'sprint_comments',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('type', postgresql.ENUM(name='comment_type', create_type=False), nullable=False, server_default='GENERAL'),
        sa.Column('sprint_id', sa.String(36), sa.ForeignKey('sprints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sprint_comments_sprint_created', 'sprint_comments', ['sprint_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_sprint_comments_sprint_created', table_name='sprint_comments')
    op.drop_table('sprint_comments')

    op.drop_index('ix_stories_sprint_id', table_name='stories')
    op.drop_index('ix_stories_project_id', table_name='stories')
    op.drop_table('stories')

    op.execute('ALTER TABLE sprints DROP CONSTRAINT ex_sprints_no_overlap')
    op.drop_index('uq_sprints_one_active_per_project', table_name='sprints')
    op.drop_index('ix_sprints_project_id', table_name='sprints')
    op.drop_table('sprints')

    # Drop enum types
    op.execute('DROP TYPE comment_type')
    op.execute('DROP TYPE story_status')
    op.execute('DROP TYPE sprint_status')
