"""
Shared fixtures for rewards ledger tests.

Each test gets a fresh app on an in-memory SQLite database. Account fixtures
return account IDs; tests open their own app context and query what they need.
"""
import uuid
from datetime import datetime

import pytest

from rewards_ledger import create_app
from rewards_ledger.extensions import db
from rewards_ledger.models import Account


@pytest.fixture
def app():
    app = create_app('testing')

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_account(app, email=None, mobile_number=None, verified=False, balance=0):
    """Create an account; balance is seeded through a manual adjustment."""
    from rewards_ledger.services.ledger_service import LedgerStore

    account_id = f'acct-{uuid.uuid4().hex[:8]}'
    with app.app_context():
        account = Account(
            id=account_id,
            email=email or f'{account_id}@example.com',
            mobile_number=mobile_number,
            mobile_verified=verified,
            mobile_verified_at=datetime.utcnow() if verified else None,
        )
        db.session.add(account)
        db.session.commit()

        if balance:
            LedgerStore().adjust_points(account_id, balance, note='Opening balance', created_by='tests')

    return account_id


@pytest.fixture
def sample_account(app):
    """Unverified account with no points."""
    return make_account(app)


@pytest.fixture
def verified_account(app):
    """Verified account holding 1200 confirmed points."""
    return make_account(app, mobile_number=f'+4477{uuid.uuid4().int % 10**8:08d}', verified=True, balance=1200)


@pytest.fixture
def rich_account(app):
    """Verified account holding 10000 confirmed points."""
    return make_account(app, mobile_number=f'+4478{uuid.uuid4().int % 10**8:08d}', verified=True, balance=10000)


@pytest.fixture
def account_factory(app):
    """Call with make_account keyword arguments to create more accounts."""
    def factory(**kwargs):
        return make_account(app, **kwargs)
    return factory
