import os
import sys
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("ACADEMY_TIMEZONE", "Asia/Kolkata")

# Ensure ENCRYPTION_KEY is set for tests, if not already in .env
# Use a valid Fernet key (32 url-safe base64-encoded bytes)
os.environ.setdefault("ENCRYPTION_KEY", "jhe53bcYZI4_MZS4Kb8hu8-xnQHHvwqSX8LN4sDtzbw=")

# SMTP must never be reached from the test suite
for _var in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS"):
    os.environ.pop(_var, None)


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from academy import app as flask_app, db
from academy.extensions import limiter, mailer
from academy.models import Account, AccountRole
from academy.security import hash_password


TEST_PASSWORD = "correct-horse-battery"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
    )
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    limiter.reset()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def sent_mail(monkeypatch):
    """Capture outgoing mail instead of delivering it."""
    outbox = []

    def fake_dispatch(to_address, subject, html_body):
        outbox.append({'to': to_address, 'subject': subject, 'html': html_body})

    monkeypatch.setattr(mailer, 'dispatch', fake_dispatch)
    return outbox


# SQLite pragma event listener for foreign key constraints
# Registered at module level and persists across all tests
from sqlalchemy import event
from sqlalchemy.engine import Engine

def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Register event listener once at module load time
# Only applies to SQLite connections, so won't affect other databases
event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


@pytest.fixture
def make_account(client):
    """Factory for active accounts that log in with TEST_PASSWORD."""
    def _make(name, email, role=AccountRole.STUDENT, **fields):
        account = Account(
            name=name,
            email=email.lower(),
            role=role,
            password_hash=TEST_PASSWORD_HASH,
            status='Active',
            **fields,
        )
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def login(client):
    """Put an account in the test client's session."""
    def _login(account):
        with client.session_transaction() as sess:
            sess['account_id'] = account.id
    return _login
