"""Add notification and push subscription tables.

Revision ID: 002_notifications
Revises: 001_core_tables
Create Date: 2026-09-21

- Create notifications table (in-app feed, read state, delivery bookkeeping)
- Create push_subscriptions table for Web Push subscription storage
- Each row belongs to exactly one user or one client (check constraints)
- Composite (recipient, status) indexes for unread count queries
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '002_notifications'
down_revision = '001_core_tables'
branch_labels = None
depends_on = None


NOTIFICATION_TYPES = (
    'task_assigned', 'task_created', 'task_completed', 'task_modified',
    'comment_mention', 'message_received', 'system_alert', 'payment_received',
)
NOTIFICATION_STATUSES = ('unread', 'read', 'archived')
DELIVERY_STATUSES = ('pending', 'delivered', 'partial', 'failed')

SINGLE_RECIPIENT = (
    "(user_id IS NOT NULL AND client_id IS NULL) OR "
    "(user_id IS NULL AND client_id IS NOT NULL)"
)


def upgrade() -> None:
    """Add notifications and push_subscriptions tables."""
    bind = op.get_bind()
    dialect = bind.dialect.name

    if dialect == 'postgresql':
        uuid_type = postgresql.UUID(as_uuid=True)
        json_type = postgresql.JSONB()
        now = sa.text('NOW()')
    else:
        # SQLite: use LargeBinary for UUID
        uuid_type = sa.LargeBinary(16)
        json_type = sa.JSON()
        now = sa.text("datetime('now')")

    # =========================================================================
    # Create notifications table
    # =========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', uuid_type, nullable=False, unique=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', name='fk_notifications_user_id', ondelete='CASCADE'), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id', name='fk_notifications_client_id', ondelete='CASCADE'), nullable=True),
        sa.Column('type', sa.Enum(*NOTIFICATION_TYPES, name='notification_type'), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', json_type, nullable=False),
        sa.Column('status', sa.Enum(*NOTIFICATION_STATUSES, name='notification_status'), nullable=False, server_default='unread'),
        sa.Column('delivery_status', sa.Enum(*DELIVERY_STATUSES, name='notification_delivery_status'), nullable=False, server_default='pending'),
        sa.Column('delivery_error', sa.String(1000), nullable=True),
        sa.Column('last_delivery_attempt', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=now),
        sa.CheckConstraint(SINGLE_RECIPIENT, name='ck_notifications_single_recipient'),
    )

    # Indexes for notifications
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('ix_notifications_user_status', 'notifications', ['user_id', 'status'])
    op.create_index('ix_notifications_client_status', 'notifications', ['client_id', 'status'])

    # =========================================================================
    # Create push_subscriptions table
    # =========================================================================
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('uuid', uuid_type, nullable=False, unique=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', name='fk_push_subscriptions_user_id', ondelete='CASCADE'), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id', name='fk_push_subscriptions_client_id', ondelete='CASCADE'), nullable=True),
        sa.Column('endpoint', sa.String(1024), nullable=False, unique=True),
        sa.Column('p256dh_key', sa.String(255), nullable=False),
        sa.Column('auth_key', sa.String(255), nullable=False),
        sa.Column('device_name', sa.String(100), nullable=True),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=now),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=now),
        sa.CheckConstraint(SINGLE_RECIPIENT, name='ck_push_subscriptions_single_owner'),
    )

    # Indexes for push_subscriptions
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])
    op.create_index('ix_push_subscriptions_client_id', 'push_subscriptions', ['client_id'])


def downgrade() -> None:
    """Remove push_subscriptions and notifications tables."""
    op.drop_index('ix_push_subscriptions_client_id', table_name='push_subscriptions')
    op.drop_index('ix_push_subscriptions_user_id', table_name='push_subscriptions')
    op.drop_table('push_subscriptions')

    op.drop_index('ix_notifications_client_status', table_name='notifications')
    op.drop_index('ix_notifications_user_status', table_name='notifications')
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_table('notifications')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS notification_delivery_status')
        op.execute('DROP TYPE IF EXISTS notification_status')
        op.execute('DROP TYPE IF EXISTS notification_type')
