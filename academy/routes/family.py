"""
Family routes.

Everything a signed-in student, guardian or teacher sees: the family's
students with their invoices and enrollments, the shared notification stream
and the content feeds. Records outside the caller's family answer 404.
"""

from flask import Blueprint, jsonify, g
from werkzeug.exceptions import Forbidden

from academy.access import family_account_or_404, visible_content
from academy.auth import login_required
from academy.distribution import mark_notification_read, notifications_for
from academy.family import family_accounts
from academy.models import AccountRole, BookMaterial, Event, GradeExam, Invoice, Notice
from academy.scheduling import enrollments_for

# Create blueprint
family_bp = Blueprint('family', __name__, url_prefix='/api')


# -------------------- FAMILY STUDENTS --------------------

@family_bp.route('/family/students')
@login_required
def family_students():
    return jsonify([account.to_dict() for account in family_accounts(g.principal)])


@family_bp.route('/family/students/<int:student_id>/invoices')
@login_required
def family_student_invoices(student_id):
    student = family_account_or_404(g.principal, student_id)
    invoices = student.invoices.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()
    return jsonify([invoice.to_dict() for invoice in invoices])


@family_bp.route('/family/students/<int:student_id>/enrollments')
@login_required
def family_student_enrollments(student_id):
    student = family_account_or_404(g.principal, student_id)
    return jsonify(enrollments_for(student.id))


@family_bp.route('/student/enrollments')
@login_required
def own_enrollments():
    if g.principal.role != AccountRole.STUDENT:
        raise Forbidden("Access denied. This is a student-only endpoint.")
    return jsonify(enrollments_for(g.principal.id))


# -------------------- NOTIFICATIONS --------------------

@family_bp.route('/notifications')
@login_required
def notifications():
    """Notifications of the whole family, newest first."""
    return jsonify([n.to_dict() for n in notifications_for(g.principal)])


@family_bp.route('/notifications/<int:notification_id>/read', methods=['PUT'])
@login_required
def read_notification(notification_id):
    notification = mark_notification_read(notification_id, g.principal)
    return jsonify(notification.to_dict())


# -------------------- CONTENT FEEDS --------------------

@family_bp.route('/events')
@login_required
def events():
    return jsonify([item.to_dict() for item in visible_content(Event, g.principal)])


@family_bp.route('/notices')
@login_required
def notices():
    return jsonify([item.to_dict() for item in visible_content(Notice, g.principal)])


@family_bp.route('/grade-exams')
@login_required
def grade_exams():
    return jsonify([item.to_dict() for item in visible_content(GradeExam, g.principal)])


@family_bp.route('/book-materials')
@login_required
def book_materials():
    return jsonify([item.to_dict() for item in visible_content(BookMaterial, g.principal)])
