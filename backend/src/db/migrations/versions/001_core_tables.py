"""Create users, clients and tasks tables.

Revision ID: 001_core_tables
Revises:
Create Date: 2026-09-21

- Create users table (staff recipients, role drives overdue supervisors)
- Create clients table (client recipients)
- Create tasks table with the columns the overdue scan reads
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_core_tables'
down_revision = None
branch_labels = None
depends_on = None


USER_ROLES = (
    'super_user', 'district_manager', 'territory_manager',
    'account_executive', 'task_supervisor', 'task_agent', 'client',
)
TASK_STATUSES = (
    'new', 'in_progress', 'completed', 'overdue', 'approved',
    'in_review', 'testing', 'blocked', 'on_hold',
)


def upgrade() -> None:
    """Add users, clients and tasks tables."""
    bind = op.get_bind()
    dialect = bind.dialect.name

    if dialect == 'postgresql':
        uuid_type = postgresql.UUID(as_uuid=True)
        now = sa.text('NOW()')
    else:
        # SQLite: use LargeBinary for UUID
        uuid_type = sa.LargeBinary(16)
        now = sa.text("datetime('now')")

    # =========================================================================
    # Create users table
    # =========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', uuid_type, nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('role', sa.Enum(*USER_ROLES, name='user_role'), nullable=False, server_default='task_agent'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )

    # =========================================================================
    # Create clients table
    # =========================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', uuid_type, nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )

    # =========================================================================
    # Create tasks table
    # =========================================================================
    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', uuid_type, nullable=False, unique=True, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.Enum(*TASK_STATUSES, name='task_status'), nullable=False, server_default='new'),
        sa.Column('priority', sa.String(30), nullable=True),
        sa.Column('assigned_to_id', sa.Integer(), sa.ForeignKey('users.id', name='fk_tasks_assigned_to_id', ondelete='SET NULL'), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id', name='fk_tasks_client_id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
    )

    op.create_index('ix_tasks_assigned_to_id', 'tasks', ['assigned_to_id'])
    op.create_index('ix_tasks_due_date_status', 'tasks', ['due_date', 'status'])


def downgrade() -> None:
    """Remove tasks, clients and users tables."""
    op.drop_index('ix_tasks_due_date_status', table_name='tasks')
    op.drop_index('ix_tasks_assigned_to_id', table_name='tasks')
    op.drop_table('tasks')
    op.drop_table('clients')
    op.drop_table('users')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS task_status')
        op.execute('DROP TYPE IF EXISTS user_role')
