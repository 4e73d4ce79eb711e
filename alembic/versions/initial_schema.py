"""Initial schema: users, plans, subscriptions, daily quotas, questions, revision sheets

Revision ID: schoolai_001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from datetime import datetime
import uuid


# revision identifiers, used by Alembic.
revision = 'schoolai_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='student'),
        sa.Column('account_status', sa.String(), nullable=False, server_default='active'),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('profile_image', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)
    op.create_index(op.f('ix_users_account_status'), 'users', ['account_status'], unique=False)

    plans = op.create_table('plans',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('daily_questions_limit', sa.Integer(), nullable=False),
        sa.Column('can_generate_quizzes', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_export_files', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_advanced_stats', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_id'), 'plans', ['id'], unique=False)
    op.create_index(op.f('ix_plans_name'), 'plans', ['name'], unique=True)

    op.create_table('subscriptions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('plan_id', sa.String(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'CANCELLED', 'EXPIRED', name='subscriptionstatus'), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
    op.create_index(op.f('ix_subscriptions_created_at'), 'subscriptions', ['created_at'], unique=False)

    op.create_table('daily_quotas',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('quota_date', sa.Date(), nullable=False),
        sa.Column('questions_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('questions_limit', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'quota_date', name='uq_daily_quotas_user_date')
    )
    op.create_index(op.f('ix_daily_quotas_id'), 'daily_quotas', ['id'], unique=False)
    op.create_index(op.f('ix_daily_quotas_user_id'), 'daily_quotas', ['user_id'], unique=False)
    op.create_index(op.f('ix_daily_quotas_quota_date'), 'daily_quotas', ['quota_date'], unique=False)

    op.create_table('questions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('grade_level', sa.String(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('ai_response', sa.Text(), nullable=False),
        sa.Column('steps', sa.JSON(), nullable=False),
        sa.Column('quiz', sa.JSON(), nullable=False),
        sa.Column('question_type', sa.String(), nullable=False, server_default='explanation'),
        sa.Column('is_bookmarked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('tokens_used', sa.Integer(), nullable=True),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('used_fallback', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_questions_id'), 'questions', ['id'], unique=False)
    op.create_index(op.f('ix_questions_user_id'), 'questions', ['user_id'], unique=False)
    op.create_index(op.f('ix_questions_subject'), 'questions', ['subject'], unique=False)
    op.create_index(op.f('ix_questions_grade_level'), 'questions', ['grade_level'], unique=False)
    op.create_index(op.f('ix_questions_created_at'), 'questions', ['created_at'], unique=False)

    op.create_table('revision_sheets',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('grade_level', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('export_format', sa.String(), nullable=False, server_default='PDF'),
        sa.Column('question_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('download_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_revision_sheets_id'), 'revision_sheets', ['id'], unique=False)
    op.create_index(op.f('ix_revision_sheets_user_id'), 'revision_sheets', ['user_id'], unique=False)
    op.create_index(op.f('ix_revision_sheets_subject'), 'revision_sheets', ['subject'], unique=False)
    op.create_index(op.f('ix_revision_sheets_created_at'), 'revision_sheets', ['created_at'], unique=False)

    # Seed plans
    now = datetime.utcnow()
    op.bulk_insert(plans, [
        {
            'id': str(uuid.uuid4()), 'name': 'freemium', 'price': 0.00, 'daily_questions_limit': 20,
            'can_generate_quizzes': False, 'can_export_files': False, 'has_advanced_stats': False,
            'features': {'description': 'Free plan with daily limits', 'maxQuestions': 20, 'support': 'Community'},
            'active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'standard', 'price': 9.99, 'daily_questions_limit': 100,
            'can_generate_quizzes': True, 'can_export_files': True, 'has_advanced_stats': False,
            'features': {'description': 'Standard plan for students', 'maxQuestions': 100, 'support': 'Email',
                         'exportFormats': ['PDF', 'TXT']},
            'active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'premium', 'price': 19.99, 'daily_questions_limit': 300,
            'can_generate_quizzes': True, 'can_export_files': True, 'has_advanced_stats': True,
            'features': {'description': 'Premium plan with advanced statistics', 'maxQuestions': 300,
                         'support': 'Priority', 'exportFormats': ['PDF', 'WORD', 'TXT'], 'analytics': True},
            'active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'pro', 'price': 39.99, 'daily_questions_limit': 1000,
            'can_generate_quizzes': True, 'can_export_files': True, 'has_advanced_stats': True,
            'features': {'description': 'Professional plan for schools and training centres', 'maxQuestions': 1000,
                         'support': '24/7', 'exportFormats': ['PDF', 'WORD', 'TXT'], 'analytics': True,
                         'multipleUsers': True},
            'active': True, 'created_at': now, 'updated_at': now,
        },
    ])


def downgrade():
    op.drop_table('revision_sheets')
    op.drop_table('questions')
    op.drop_table('daily_quotas')
    op.drop_table('subscriptions')
    op.drop_table('plans')
    op.drop_table('users')
    sa.Enum(name='subscriptionstatus').drop(op.get_bind(), checkfirst=True)
