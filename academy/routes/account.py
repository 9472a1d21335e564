"""
Account routes: registration, login/logout, the session probe and profile
updates.
"""

from flask import Blueprint, jsonify, current_app, g
from flask_wtf.csrf import generate_csrf
from werkzeug.exceptions import Unauthorized

from academy.access import family_account_or_404
from academy.accounts import authenticate, register_accounts, register_admin, update_account
from academy.auth import login_required, start_session, end_session, get_current_account
from academy.extensions import limiter
from academy.utils.helpers import get_json_payload
from academy.utils.payloads import parse_int

# Create blueprint
account_bp = Blueprint('account', __name__, url_prefix='/api')


def _no_store(response):
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, private'
    response.headers['Pragma'] = 'no-cache'
    return response


# -------------------- REGISTRATION --------------------

@account_bp.route('/register', methods=['POST'])
@limiter.limit("20 per hour")
def register():
    """Register one or more students/teachers in a single transaction."""
    accounts = register_accounts(get_json_payload(expect=list))
    return jsonify({
        'message': 'Registration successful',
        'users': [account.to_dict() for account in accounts],
    }), 201


@account_bp.route('/admin/register', methods=['POST'])
@limiter.limit("10 per hour")
def register_administrator():
    account = register_admin(get_json_payload())
    return jsonify(account.to_dict()), 201


# -------------------- SESSION --------------------

@account_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    data = get_json_payload()
    account = authenticate(data.get('email'), data.get('password'))
    if account is None:
        current_app.logger.info("Failed login attempt")
        raise Unauthorized("Invalid email or password.")

    start_session(account)
    current_app.logger.info(f"Account {account.id} logged in")
    return _no_store(jsonify(account.to_dict()))


@account_bp.route('/logout', methods=['POST'])
def logout():
    end_session()
    return _no_store(jsonify({'message': 'Logged out successfully.'}))


@account_bp.route('/session')
def current_session():
    """Return the logged-in account (or null) and a CSRF token for later writes."""
    account = get_current_account()
    return _no_store(jsonify({
        'user': account.to_dict() if account else None,
        'csrfToken': generate_csrf(),
    }))


# -------------------- PROFILE --------------------

@account_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    """
    Update the caller's profile, or a family member's when ``id`` is given.

    Email, role and password cannot be changed here.
    """
    data = get_json_payload()
    target_id = parse_int(data.get('id', g.principal.id), "id must be an account id.")

    account = family_account_or_404(g.principal, target_id, message="User not found.")
    update_account(account, data, allow_credentials=False)
    return jsonify(account.to_dict())
