"""Pytest configuration and fixtures."""

import itertools
import os
import secrets
import tempfile

import pytest

# The app reads its configuration at import time
_TEST_DIR = tempfile.mkdtemp(prefix="taskfi-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["LOG_DIR"] = os.path.join(_TEST_DIR, "logs")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)
os.environ.setdefault("SESSION_SECRET", f"test-only-{secrets.token_urlsafe(32)}")

from app import (  # noqa: E402
    Category,
    Gig,
    User,
    app as flask_app,
    db,
    seed_default_categories,
)

_wallets = itertools.count(1)

BASIC_PACKAGES = [
    {
        "name": "Basic",
        "description": "Single concept with source files",
        "price": 500.0,
        "deliveryDays": 7,
        "revisions": 1,
        "features": ["1 concept", "source files"],
    },
    {
        "name": "Standard",
        "description": "Three concepts with source files",
        "price": 900.0,
        "deliveryDays": 5,
        "revisions": 3,
        "features": ["3 concepts", "source files"],
    },
    {
        "name": "Premium",
        "description": "Full brand kit with unlimited tweaks",
        "price": 1500.0,
        "deliveryDays": 3,
        "revisions": 10,
        "features": ["brand kit", "social assets", "source files"],
    },
]


@pytest.fixture(autouse=True)
def app():
    """Fresh schema and default categories for every test."""
    flask_app.config["RATE_LIMIT_ENABLED"] = False
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        seed_default_categories()
        yield flask_app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user():
    """Factory for committed users."""

    def _make(role="FREELANCER", name=None, username=None):
        n = next(_wallets)
        user = User(
            wallet_address=f"0xTEST{n:036d}",
            username=username or f"user_{n}",
            name=name,
            role=role,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def login(client):
    """Put a user id into the client's session, as wallet sign-in does."""

    def _login(user):
        with client.session_transaction() as sess:
            sess["user_id"] = user.id
        return user

    return _login


@pytest.fixture
def category():
    return Category.query.filter_by(slug="smart-contracts").first()


@pytest.fixture
def make_gig(category):
    """Factory for committed gigs; packages default to BASIC_PACKAGES."""

    def _make(freelancer, title="Logo Design for your Web3 project", status="ACTIVE",
              packages=None, category_id=None, tags=None, rating=0.0):
        gig = Gig(
            title=title,
            description="I will design a clean, memorable logo for your protocol or DAO. " * 3,
            category_id=category_id or category.id,
            freelancer_id=freelancer.id,
            status=status,
            deliverables='["Logo files"]',
            gallery="[]",
            rating=rating,
        )
        gig.set_tags(tags if tags is not None else ["logo", "branding"])
        gig.set_packages(packages or BASIC_PACKAGES)
        db.session.add(gig)
        db.session.commit()
        return gig

    return _make


@pytest.fixture
def reload():
    """Read a row as committed, bypassing the session identity map."""

    def _reload(model, pk):
        db.session.expire_all()
        return db.session.get(model, pk)

    return _reload
