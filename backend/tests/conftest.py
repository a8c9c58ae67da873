"""
Pytest configuration and fixtures for backend tests.

Provides shared fixtures for:
- Test database sessions (in-memory SQLite)
- Sample users, clients and tasks
- Notification and push subscription factories
- FastAPI test client with the database dependency overridden
"""

import os
import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ['WNP_DB_URL'] = 'sqlite:///:memory:'
os.environ['WNP_OVERDUE_SCHEDULER_ENABLED'] = 'false'
os.environ['VAPID_PUBLIC_KEY'] = ''
os.environ['VAPID_PRIVATE_KEY'] = ''
os.environ['VAPID_SUBJECT'] = ''

from backend.src.models import (
    Base,
    Client,
    Notification,
    NotificationStatus,
    NotificationType,
    PushSubscription,
    Task,
    TaskStatus,
    User,
    UserRole,
)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    from sqlalchemy import event

    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute('pragma foreign_keys=ON')

    event.listen(engine, 'connect', _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope='function')
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine (used by scan workers)."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )


@pytest.fixture(scope='function')
def test_db_session(test_session_factory):
    """Create a test database session."""
    session = test_session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Sample Data Factories
# ============================================================================

@pytest.fixture
def sample_user(test_db_session):
    """Factory for creating User models in the database."""
    _counter = [0]

    def _create(
        first_name='Alex',
        last_name='Agent',
        username=None,
        role=UserRole.TASK_AGENT,
        avatar_url=None,
        email=None,
    ):
        _counter[0] += 1
        user = User(
            email=email or f'user{_counter[0]}@example.com',
            first_name=first_name,
            last_name=last_name,
            username=username or f'user{_counter[0]}',
            avatar_url=avatar_url,
            role=role,
        )
        test_db_session.add(user)
        test_db_session.commit()
        test_db_session.refresh(user)
        return user
    return _create


@pytest.fixture
def sample_client(test_db_session):
    """Factory for creating Client models in the database."""
    _counter = [0]

    def _create(name=None, email=None):
        _counter[0] += 1
        client = Client(
            name=name or f'Client {_counter[0]}',
            email=email or f'client{_counter[0]}@example.com',
        )
        test_db_session.add(client)
        test_db_session.commit()
        test_db_session.refresh(client)
        return client
    return _create


@pytest.fixture
def sample_task(test_db_session):
    """Factory for creating Task models in the database."""
    _counter = [0]

    def _create(
        title=None,
        due_date=None,
        status=TaskStatus.IN_PROGRESS,
        priority='high',
        assigned_to=None,
        commit=True,
    ):
        _counter[0] += 1
        task = Task(
            title=title or f'Task {_counter[0]}',
            due_date=due_date or datetime.utcnow() - timedelta(days=1),
            status=status,
            priority=priority,
            assigned_to_id=assigned_to.id if assigned_to is not None else None,
        )
        test_db_session.add(task)
        if commit:
            test_db_session.commit()
            test_db_session.refresh(task)
        return task
    return _create


@pytest.fixture
def test_user(sample_user):
    """A task agent."""
    return sample_user(first_name='Alex', last_name='Agent', username='alex')


@pytest.fixture
def test_supervisor(sample_user):
    """A task supervisor (receives every overdue alert)."""
    return sample_user(
        first_name='Sam', last_name='Supervisor', username='sam',
        role=UserRole.TASK_SUPERVISOR,
    )


@pytest.fixture
def test_client_account(sample_client):
    return sample_client(name='Acme Corp')


@pytest.fixture
def sample_notification(test_db_session):
    """Factory for creating Notification rows directly in the store."""
    def _create(
        user=None,
        client=None,
        notification_type=NotificationType.SYSTEM_ALERT,
        message='Test notification',
        data=None,
        status=NotificationStatus.UNREAD,
        created_at=None,
    ):
        now = created_at or datetime.utcnow()
        notification = Notification(
            user_id=user.id if user is not None else None,
            client_id=client.id if client is not None else None,
            type=notification_type,
            message=message,
            data=data or {},
            status=status,
            created_at=now,
            updated_at=now,
        )
        test_db_session.add(notification)
        test_db_session.commit()
        test_db_session.refresh(notification)
        return notification
    return _create


@pytest.fixture
def sample_subscription(test_db_session):
    """Factory for creating PushSubscription rows."""
    _counter = [0]

    def _create(user=None, client=None, endpoint=None):
        _counter[0] += 1
        subscription = PushSubscription(
            user_id=user.id if user is not None else None,
            client_id=client.id if client is not None else None,
            endpoint=endpoint or f'https://push.example.com/sub/{_counter[0]}',
            p256dh_key='test-p256dh-key',
            auth_key='test-auth-key',
            device_name='Test Device',
        )
        test_db_session.add(subscription)
        test_db_session.commit()
        test_db_session.refresh(subscription)
        return subscription
    return _create


# ============================================================================
# API Fixtures
# ============================================================================

@pytest.fixture
def test_client(test_db_session):
    """Create a FastAPI test client backed by the test database session."""
    from fastapi.testclient import TestClient
    from backend.src.main import app
    from backend.src.db.database import get_db
    from backend.src.api.notifications import limiter

    def get_test_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = get_test_db
    limiter.reset()

    with TestClient(app) as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()
