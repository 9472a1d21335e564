"""
Public routes for the academy portal.

Health checks, the course and location catalogues, the contact form and the
email availability check used by the registration form (no authentication
required).
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import BadRequest

from academy.extensions import db, limiter
from academy.models import Account, ContactMessage, Location
from academy.scheduling import list_courses
from academy.utils.helpers import get_json_payload

# Create blueprint
main_bp = Blueprint('main', __name__)


# -------------------- HEALTH --------------------

@main_bp.route('/health')
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(error='Database error'), 500


@main_bp.route('/api/ping')
def ping():
    return jsonify({'message': 'pong'})


# -------------------- CATALOGUE --------------------

@main_bp.route('/api/courses')
def courses():
    """List courses, seeding the defaults on first use."""
    return jsonify([course.to_dict() for course in list_courses()])


@main_bp.route('/api/locations')
def locations():
    return jsonify([location.to_dict() for location in Location.query.order_by(Location.name).all()])


# -------------------- CONTACT --------------------

@main_bp.route('/api/contact', methods=['POST'])
@limiter.limit("10 per hour")
def contact():
    data = get_json_payload()
    name = str(data.get('name') or '').strip()
    email = str(data.get('email') or '').strip()
    message = str(data.get('message') or '').strip()
    if not name or not email or not message:
        raise BadRequest("Name, email and message are required.")

    db.session.add(ContactMessage(name=name, email=email.lower(), message=message))
    db.session.commit()
    current_app.logger.info(f"Contact message received from {email}")
    return jsonify({'message': 'Thank you for your message! We will get back to you soon.'}), 201


@main_bp.route('/api/users/check-email', methods=['POST'])
@limiter.limit("30 per minute")
def check_email():
    """Report whether an email is taken, including by accounts in the trash."""
    data = get_json_payload()
    email = data.get('email')
    if not isinstance(email, str) or not email.strip():
        raise BadRequest("Email is required.")
    exists = Account.query.filter_by(email=email.strip().lower()).first() is not None
    return jsonify({'exists': exists})
