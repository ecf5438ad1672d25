"""ai planner tables

Revision ID: 001_ai_planner
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_ai_planner'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- Weekly Plans ---
    op.create_table('ai_weekly_plans',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('plan_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('generation_context', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ai_model_used', sa.String(80), nullable=True),
        sa.Column('adaptation_history', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_ai_weekly_plans_user_week')
    )
    op.create_index('ix_ai_weekly_plans_user_week', 'ai_weekly_plans', ['user_id', 'week_start'])

    # --- Daily Insights ---
    op.create_table('ai_insights',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('insight_type', sa.String(20), server_default='daily', nullable=False),
        sa.Column('target_date', sa.Date(), nullable=False),
        sa.Column('insights_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('model', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'insight_type', 'target_date', name='uq_ai_insights_user_type_date')
    )

    # --- Usage Tracking ---
    op.create_table('ai_usage_tracking',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('feature_type', sa.String(40), nullable=False),
        sa.Column('usage_date', sa.Date(), nullable=False),
        sa.Column('usage_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('cost_estimate', sa.Float(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'feature_type', 'usage_date', name='uq_ai_usage_user_feature_date')
    )


def downgrade():
    op.drop_table('ai_usage_tracking')
    op.drop_table('ai_insights')
    op.drop_index('ix_ai_weekly_plans_user_week', table_name='ai_weekly_plans')
    op.drop_table('ai_weekly_plans')
