"""add grades for submissions

Revision ID: 8c41e5f0d2b7
Revises: 3b7d2c91a4e0
Create Date: 2026-10-20 10:03:17.902114

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c41e5f0d2b7'
down_revision = '3b7d2c91a4e0'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'grades',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('submission_id', sa.Integer(), nullable=False),
        sa.Column('grader_id', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('feedback_text', sa.Text(), nullable=True),
        sa.Column('rubric_scores_json', sa.Text(), nullable=True),
        sa.Column('graded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['grader_id'], ['users.id']),
        sa.ForeignKeyConstraint(['submission_id'], ['submissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('submission_id')
    )


def downgrade():
    op.drop_table('grades')
