"""
Authentication and authorization utilities for the academy portal.

Contains the Principal built for each request, session helpers and the
authentication decorators used by the blueprints.
"""

from collections import namedtuple
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import session, g, current_app
from werkzeug.exceptions import Unauthorized, Forbidden


# -------------------- SESSION CONFIGURATION --------------------

SESSION_LIFETIME = timedelta(days=7)


# The authenticated identity for one request. Rebuilt from the live account
# row on every request so soft-deleted accounts lose access immediately.
Principal = namedtuple('Principal', ['id', 'email', 'role'])


def principal_for(account):
    return Principal(id=account.id, email=account.email, role=account.role)


# -------------------- SESSION HELPERS --------------------

def start_session(account):
    """Store the logged-in account in the session."""
    session.clear()
    session.permanent = True
    session['account_id'] = account.id
    session['login_time'] = datetime.now(timezone.utc).isoformat()


def end_session():
    session.pop('account_id', None)
    session.pop('login_time', None)


def get_current_account():
    """
    Return the logged-in account, or None.

    Soft-deleted or removed accounts are treated as logged out.
    """
    from academy.models import Account

    account_id = session.get('account_id')
    if account_id is None:
        return None
    account = Account.active().filter_by(id=account_id).first()
    if account is None:
        current_app.logger.info(f"Session for account {account_id} no longer valid; clearing")
        end_session()
    return account


def get_principal():
    account = get_current_account()
    return principal_for(account) if account else None


# -------------------- AUTHENTICATION DECORATORS --------------------

def login_required(f):
    """
    Decorator to require an authenticated account for a route.

    Makes the request's Principal available as ``g.principal``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = get_principal()
        if principal is None:
            raise Unauthorized("Authentication required.")
        g.principal = principal
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to require an administrator for a route.

    Unauthenticated requests get 401; authenticated non-admins get 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from academy.models import AccountRole

        principal = get_principal()
        if principal is None:
            raise Unauthorized("Authentication required.")
        if principal.role != AccountRole.ADMIN:
            current_app.logger.warning(
                f"Account {principal.id} ({principal.role.value}) denied admin access"
            )
            raise Forbidden("Administrator access required.")
        g.principal = principal
        return f(*args, **kwargs)
    return decorated_function
