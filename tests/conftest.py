"""
Pytest configuration and shared fixtures for all tests.
"""
import os
import sys
import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock, MagicMock, patch

from flask_jwt_extended import create_access_token

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from passkit import create_app
from passkit.core import db as _db
from tests.factories import (
    UserFactory, PassTemplateFactory, PassFactory, ScannerLinkFactory,
    DeviceRegistrationFactory,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('web_config.TestingConfig')

    # Create application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture
def db(app):
    """Create clean database for each test."""
    _db.create_all()
    yield _db
    _db.session.rollback()
    _db.session.remove()
    _db.drop_all()


@pytest.fixture
def client(app, db):
    """Create Flask test client."""
    return app.test_client()


# Mock fixtures
@pytest.fixture(autouse=True)
def mock_redis(app):
    """Mock Redis client - applied automatically to all tests."""
    mock = Mock()
    mock.get.return_value = None
    mock.set.return_value = True
    mock.incr.return_value = 1
    mock.expire.return_value = True
    mock.pipeline.return_value = mock
    mock.execute.return_value = [1, True]
    mock.ping.return_value = True
    original = getattr(app, 'redis', None)
    app.redis = mock
    yield mock
    app.redis = original


@pytest.fixture(autouse=True)
def mock_task_dispatch():
    """Keep delivery and bulk tasks from running inline; tests call them explicitly."""
    from passkit.tasks.tasks_pass_updates import deliver_apple_update, deliver_google_update
    from passkit.tasks.tasks_bulk_updates import process_bulk_update

    with patch.object(deliver_apple_update, 'apply_async') as apple, \
            patch.object(deliver_google_update, 'apply_async') as google, \
            patch.object(process_bulk_update, 'apply_async') as bulk:
        yield {'apple': apple, 'google': google, 'bulk': bulk}


@pytest.fixture
def mock_celery_self():
    """Mock Celery task self for testing."""
    mock_self = MagicMock()
    mock_self.request = MagicMock()
    mock_self.request.retries = 0
    mock_self.request.id = 'mock-task-id'
    mock_self.max_retries = 3
    mock_self.retry = MagicMock(side_effect=Exception("Retry called"))
    return mock_self


@pytest.fixture
def mock_push_service():
    """Stand-in for the APNs / Google Wallet client."""
    service = MagicMock()
    service.send_apple_pushes.return_value = []
    service.update_google_object.return_value = None
    return service


# Tenant fixtures
@pytest.fixture
def tenant(db):
    return UserFactory()


@pytest.fixture
def other_tenant(db):
    return UserFactory()


@pytest.fixture
def template(tenant):
    return PassTemplateFactory(
        user=tenant,
        design_data={'fields': [
            {'key': 'points', 'label': 'Points', 'section': 'primary'},
            {'key': 'tier', 'label': 'Tier'},
            {'key': 'name', 'label': 'Name'},
        ]},
    )


@pytest.fixture
def wallet_pass(tenant, template):
    """Active single-use pass on both platforms."""
    return PassFactory(
        user=tenant,
        template=template,
        platforms=['apple', 'google'],
        pass_data={'points': '10', 'tier': 'silver'},
        google_object_id='3388000000012345678.pass-1',
    )


@pytest.fixture
def multi_use_pass(tenant, template):
    return PassFactory(user=tenant, template=template, usage_type='multi_use')


@pytest.fixture
def expired_pass(tenant, template):
    return PassFactory(user=tenant, template=template, expires_at=datetime.utcnow() - timedelta(days=1))


@pytest.fixture
def device(wallet_pass):
    """Active Apple registration for wallet_pass."""
    return DeviceRegistrationFactory(
        user_id=wallet_pass.user_id,
        serial_number=wallet_pass.serial_number,
        pass_type_identifier='pass.com.example.test',
    )


@pytest.fixture
def scanner_link(tenant):
    return ScannerLinkFactory(user=tenant)


@pytest.fixture
def auth_headers(tenant):
    token = create_access_token(identity=str(tenant.id))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def other_auth_headers(other_tenant):
    token = create_access_token(identity=str(other_tenant.id))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def scanner_headers(scanner_link):
    return {'Authorization': f'Bearer {scanner_link.token}'}
