"""
Admin routes for the academy portal.

Account management and the trash, notifications, the course/batch/location
catalogue, fee structures and invoices, and the four broadcast content kinds.
All routes require the Admin role.
"""

from datetime import datetime, timezone

from flask import Blueprint, jsonify, g, current_app
from sqlalchemy import func
from werkzeug.exceptions import Conflict, NotFound

from academy.accounts import (
    create_account,
    get_active_account_or_404,
    purge_account,
    restore_account,
    soft_delete_account,
    update_account,
)
from academy.auth import admin_required
from academy.billing import generate_invoices, pay_invoice
from academy.distribution import assign, broadcast, delete_content
from academy.extensions import db
from academy.models import (
    Account,
    AccountRole,
    AccountState,
    Batch,
    BillingCycle,
    BookMaterial,
    Course,
    Currency,
    Event,
    FeeStructure,
    GradeExam,
    Invoice,
    Location,
    MATERIAL_TYPES,
    Notice,
)
from academy.scheduling import (
    COURSE_FIELDS,
    LOCATION_FIELDS,
    apply_batch_payload,
    edit_course,
    get_batch_or_404,
    get_course_or_404,
    list_courses,
    remove_course,
)
from academy.utils.helpers import get_json_payload
from academy.utils.payloads import Field, apply_fields, parse_int

# Create blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


# -------------------- DASHBOARD --------------------

@admin_bp.route('/stats')
@admin_required
def stats():
    active = Account.active()
    student_count = active.filter(Account.role == AccountRole.STUDENT).count()
    teacher_count = active.filter(Account.role == AccountRole.TEACHER).count()
    non_admin = active.filter(Account.role != AccountRole.ADMIN)
    return jsonify({
        'totalUsers': student_count + teacher_count,
        'studentCount': student_count,
        'teacherCount': teacher_count,
        'onlinePreference': non_admin.filter(Account.class_preference == 'Online').count(),
        'offlinePreference': non_admin.filter(Account.class_preference == 'Offline').count(),
    })


# -------------------- USERS --------------------

@admin_bp.route('/users')
@admin_required
def list_users():
    accounts = (
        Account.active()
        .filter(Account.role != AccountRole.ADMIN)
        .order_by(Account.id)
        .all()
    )
    return jsonify([account.to_dict() for account in accounts])


@admin_bp.route('/users/<int:account_id>')
@admin_required
def get_user(account_id):
    return jsonify(get_active_account_or_404(account_id).to_dict())


@admin_bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    account = create_account(get_json_payload())
    return jsonify(account.to_dict()), 201


@admin_bp.route('/users/<int:account_id>', methods=['PUT'])
@admin_required
def update_user(account_id):
    account = get_active_account_or_404(account_id)
    update_account(account, get_json_payload(), allow_credentials=True)
    current_app.logger.info(f"Account {account.id} updated by administrator {g.principal.id}")
    return jsonify(account.to_dict())


@admin_bp.route('/users/<int:account_id>', methods=['DELETE'])
@admin_required
def delete_user(account_id):
    """Move an account to the trash."""
    soft_delete_account(account_id, g.principal)
    return '', 204


@admin_bp.route('/users/<int:account_id>/permanent', methods=['DELETE'])
@admin_required
def delete_user_permanently(account_id):
    """Remove an account in the trash for good."""
    purge_account(account_id)
    return '', 204


@admin_bp.route('/trash')
@admin_required
def trash():
    accounts = (
        Account.query
        .filter(Account.lifecycle_state == AccountState.SOFT_DELETED)
        .order_by(Account.deleted_at.desc())
        .all()
    )
    return jsonify([account.to_dict() for account in accounts])


@admin_bp.route('/trash/<int:account_id>/restore', methods=['PUT'])
@admin_required
def restore_user(account_id):
    return jsonify(restore_account(account_id).to_dict())


# -------------------- NOTIFICATIONS --------------------

@admin_bp.route('/notifications', methods=['POST'])
@admin_required
def send_notification():
    data = get_json_payload()
    result = broadcast(data.get('userIds'), data.get('subject'), data.get('message'), link=data.get('link'))
    result['message'] = 'Notification sent and stored successfully.'
    return jsonify(result)


@admin_bp.route('/content/send', methods=['POST'])
@admin_required
def send_content():
    """Assign a content item to recipients and notify them."""
    data = get_json_payload()
    content_id = parse_int(data.get('contentId'), "contentId is required.")
    result = assign(
        data.get('contentType'),
        content_id,
        data.get('userIds'),
        data.get('subject'),
        data.get('message'),
    )
    return jsonify(result)


# -------------------- COURSES --------------------

@admin_bp.route('/courses')
@admin_required
def courses():
    return jsonify([course.to_dict() for course in list_courses()])


@admin_bp.route('/courses', methods=['POST'])
@admin_required
def create_course():
    course = apply_fields(Course(), get_json_payload(), COURSE_FIELDS)
    db.session.add(course)
    db.session.commit()
    return jsonify(course.to_dict()), 201


@admin_bp.route('/courses/<int:course_id>', methods=['PUT'])
@admin_required
def update_course(course_id):
    course = edit_course(get_course_or_404(course_id), get_json_payload())
    return jsonify(course.to_dict())


@admin_bp.route('/courses/<int:course_id>', methods=['DELETE'])
@admin_required
def delete_course(course_id):
    remove_course(get_course_or_404(course_id))
    return '', 204


# -------------------- BATCHES --------------------

@admin_bp.route('/batches')
@admin_required
def batches():
    return jsonify([batch.to_dict() for batch in Batch.query.order_by(Batch.id).all()])


@admin_bp.route('/batches', methods=['POST'])
@admin_required
def create_batch():
    batch = apply_batch_payload(Batch(), get_json_payload())
    db.session.add(batch)
    db.session.commit()
    return jsonify(batch.to_dict()), 201


@admin_bp.route('/batches/<int:batch_id>', methods=['PUT'])
@admin_required
def update_batch(batch_id):
    batch = get_batch_or_404(batch_id)
    apply_batch_payload(batch, get_json_payload(), partial=True)
    db.session.commit()
    return jsonify(batch.to_dict())


@admin_bp.route('/batches/<int:batch_id>', methods=['DELETE'])
@admin_required
def delete_batch(batch_id):
    db.session.delete(get_batch_or_404(batch_id))
    db.session.commit()
    return '', 204


# -------------------- LOCATIONS --------------------

def _get_location_or_404(location_id):
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFound("Location not found.")
    return location


def _check_address_free(address, exclude_id=None):
    query = Location.query.filter(func.lower(Location.address) == address.lower())
    if exclude_id is not None:
        query = query.filter(Location.id != exclude_id)
    if query.first() is not None:
        raise Conflict("A location with this address already exists.")


@admin_bp.route('/locations')
@admin_required
def locations():
    return jsonify([location.to_dict() for location in Location.query.order_by(Location.name).all()])


@admin_bp.route('/locations', methods=['POST'])
@admin_required
def create_location():
    location = apply_fields(Location(), get_json_payload(), LOCATION_FIELDS)
    _check_address_free(location.address)
    db.session.add(location)
    db.session.commit()
    return jsonify(location.to_dict()), 201


@admin_bp.route('/locations/<int:location_id>', methods=['PUT'])
@admin_required
def update_location(location_id):
    location = _get_location_or_404(location_id)
    with db.session.no_autoflush:
        apply_fields(location, get_json_payload(), LOCATION_FIELDS, partial=True)
        _check_address_free(location.address, exclude_id=location.id)
    db.session.commit()
    return jsonify(location.to_dict())


@admin_bp.route('/locations/<int:location_id>', methods=['DELETE'])
@admin_required
def delete_location(location_id):
    db.session.delete(_get_location_or_404(location_id))
    db.session.commit()
    return '', 204


# -------------------- FEE STRUCTURES --------------------

FEE_STRUCTURE_FIELDS = [
    Field('courseId', 'course_id', 'int', required=True),
    Field('amount', 'amount', 'decimal', required=True),
    Field('currency', 'currency', 'enum', required=True, choices=Currency),
    Field('billingCycle', 'billing_cycle', 'enum', required=True, choices=BillingCycle),
]


def _get_fee_structure_or_404(fee_id):
    fee = db.session.get(FeeStructure, fee_id)
    if fee is None:
        raise NotFound("Fee structure not found.")
    return fee


def _apply_fee_structure(fee, data, partial=False):
    """Validate fee fields and keep the course name in step with the course."""
    with db.session.no_autoflush:
        apply_fields(fee, data, FEE_STRUCTURE_FIELDS, partial=partial)
        course = get_course_or_404(fee.course_id)
        clash = FeeStructure.query.filter(FeeStructure.course_id == course.id)
        if fee.id is not None:
            clash = clash.filter(FeeStructure.id != fee.id)
        if clash.first() is not None:
            raise Conflict("A fee structure for this course already exists.")
    fee.course_name = course.name
    return fee


@admin_bp.route('/feestructures')
@admin_required
def fee_structures():
    fees = FeeStructure.query.order_by(FeeStructure.course_name).all()
    return jsonify([fee.to_dict() for fee in fees])


@admin_bp.route('/feestructures', methods=['POST'])
@admin_required
def create_fee_structure():
    fee = _apply_fee_structure(FeeStructure(), get_json_payload())
    db.session.add(fee)
    db.session.commit()
    return jsonify(fee.to_dict()), 201


@admin_bp.route('/feestructures/<int:fee_id>', methods=['PUT'])
@admin_required
def update_fee_structure(fee_id):
    """Edit a fee structure. Invoices already issued keep their copied amounts."""
    fee = _get_fee_structure_or_404(fee_id)
    _apply_fee_structure(fee, get_json_payload(), partial=True)
    db.session.commit()
    return jsonify(fee.to_dict())


@admin_bp.route('/feestructures/<int:fee_id>', methods=['DELETE'])
@admin_required
def delete_fee_structure(fee_id):
    fee = _get_fee_structure_or_404(fee_id)
    if db.session.query(Invoice.query.filter_by(fee_structure_id=fee.id).exists()).scalar():
        raise Conflict("Fee structure has issued invoices and cannot be deleted.")
    db.session.delete(fee)
    db.session.commit()
    return '', 204


# -------------------- INVOICES --------------------

@admin_bp.route('/invoices')
@admin_required
def invoices():
    rows = Invoice.query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()
    return jsonify([invoice.to_dict(include_student=True) for invoice in rows])


@admin_bp.route('/invoices/generate', methods=['POST'])
@admin_required
def generate_monthly_invoices():
    result = generate_invoices()
    result['message'] = f"{result['createdCount']} new invoices generated successfully."
    return jsonify(result), 201


@admin_bp.route('/invoices/<int:invoice_id>/pay', methods=['PUT'])
@admin_required
def record_payment(invoice_id):
    invoice = pay_invoice(invoice_id, get_json_payload())
    return jsonify(invoice.to_dict(include_student=True))


# -------------------- CONTENT --------------------

def _utc_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _fill_book_material(item):
    item.course_name = get_course_or_404(item.course_id).name


def _fill_notice(item):
    if item.issued_at is None:
        item.issued_at = _utc_now()


CONTENT_ROUTES = [
    ('events', Event, [
        Field('title', 'title', required=True),
        Field('description', 'description', required=True),
        Field('date', 'date', 'datetime', required=True),
        Field('location', 'location', required=True),
        Field('isOnline', 'is_online', 'bool'),
    ], None),
    ('notices', Notice, [
        Field('title', 'title', required=True),
        Field('content', 'content', required=True),
        Field('issuedAt', 'issued_at', 'datetime'),
    ], _fill_notice),
    ('grade-exams', GradeExam, [
        Field('title', 'title', required=True),
        Field('description', 'description', required=True),
        Field('examDate', 'exam_date', 'datetime', required=True),
        Field('registrationDeadline', 'registration_deadline', 'datetime', required=True),
        Field('syllabusLink', 'syllabus_link'),
    ], None),
    ('book-materials', BookMaterial, [
        Field('title', 'title', required=True),
        Field('description', 'description', required=True),
        Field('courseId', 'course_id', 'int', required=True),
        Field('type', 'type', 'choice', required=True, choices=MATERIAL_TYPES),
        Field('url', 'url', required=True),
        Field('data', 'data'),
    ], _fill_book_material),
]


def _register_content_routes(path, model, fields, fill):
    """
    Add list/create/update/delete routes for one content kind.

    Edits only touch the item's own fields; recipients change through
    /content/send alone.
    """
    endpoint = path.replace('-', '_')

    def get_item_or_404(item_id):
        item = db.session.get(model, item_id)
        if item is None:
            raise NotFound(f"{model.kind.value} not found.")
        return item

    @admin_required
    def list_items():
        items = model.query.order_by(*model.feed_order()).all()
        return jsonify([item.to_dict() for item in items])

    @admin_required
    def create_item():
        item = apply_fields(model(), get_json_payload(), fields)
        if fill:
            fill(item)
        db.session.add(item)
        db.session.commit()
        return jsonify(item.to_dict()), 201

    @admin_required
    def update_item(item_id):
        item = get_item_or_404(item_id)
        apply_fields(item, get_json_payload(), fields, partial=True)
        if fill:
            fill(item)
        db.session.commit()
        return jsonify(item.to_dict())

    @admin_required
    def delete_item(item_id):
        delete_content(get_item_or_404(item_id))
        return '', 204

    admin_bp.add_url_rule(f'/{path}', f'list_{endpoint}', list_items, methods=['GET'])
    admin_bp.add_url_rule(f'/{path}', f'create_{endpoint}', create_item, methods=['POST'])
    admin_bp.add_url_rule(f'/{path}/<int:item_id>', f'update_{endpoint}', update_item, methods=['PUT'])
    admin_bp.add_url_rule(f'/{path}/<int:item_id>', f'delete_{endpoint}', delete_item, methods=['DELETE'])


for _path, _model, _fields, _fill in CONTENT_ROUTES:
    _register_content_routes(_path, _model, _fields, _fill)
