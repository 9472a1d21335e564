"""
Account store operations.

Registration, administrator-managed account changes and the soft-delete
lifecycle (active -> trash -> restored or permanently removed). Emails are
stored lower-cased and stay reserved while an account sits in the trash.
"""

import re
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest, Conflict, Forbidden, NotFound

from academy.distribution import notify_first_admin, send_notification_mail
from academy.extensions import db
from academy.models import (
    Account,
    AccountRole,
    AccountState,
    AdminInviteCode,
    ACCOUNT_STATUSES,
    CLASS_PREFERENCES,
    EMPLOYMENT_TYPES,
    GRADES,
    SEXES,
)
from academy.utils.payloads import Field, apply_fields
from academy.security import burn_verification, hash_password, needs_rehash, verify_password


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+$')

PROFILE_FIELDS = [
    Field('name', 'name', required=True),
    Field('status', 'status', 'choice', choices=ACCOUNT_STATUSES),
    Field('classPreference', 'class_preference', 'choice', choices=CLASS_PREFERENCES),
    Field('photoUrl', 'photo_url'),
    Field('dob', 'dob'),
    Field('sex', 'sex', 'choice', choices=SEXES),
    Field('contactNumber', 'contact_number'),
    Field('alternateContactNumber', 'alternate_contact_number'),
    Field('address', 'address'),
    Field('dateOfJoining', 'date_of_joining'),
    Field('country', 'country'),
    Field('state', 'state'),
    Field('city', 'city'),
    Field('postalCode', 'postal_code'),
    Field('timezone', 'timezone'),
    Field('preferredTimings', 'preferred_timings', 'json'),
    Field('locationId', 'location_id', 'int'),
]

STUDENT_FIELDS = [
    Field('courses', 'courses', 'list'),
    Field('fatherName', 'father_name'),
    Field('standard', 'standard'),
    Field('schoolName', 'school_name'),
    Field('grade', 'grade', 'choice', choices=GRADES),
    Field('notes', 'notes'),
]

TEACHER_FIELDS = [
    Field('courseExpertise', 'course_expertise', 'list'),
    Field('educationalQualifications', 'educational_qualifications'),
    Field('employmentType', 'employment_type', 'choice', choices=EMPLOYMENT_TYPES),
    Field('yearsOfExperience', 'years_of_experience', 'int'),
    Field('availableTimeSlots', 'available_time_slots', 'json'),
]

# Never changed through profile or account updates
PROTECTED_KEYS = ('id', 'role', 'password', 'passwordHash', 'isDeleted', 'deletedAt')


def _utc_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fields_for(role):
    if role == AccountRole.STUDENT:
        return PROFILE_FIELDS + STUDENT_FIELDS
    if role == AccountRole.TEACHER:
        return PROFILE_FIELDS + TEACHER_FIELDS
    return PROFILE_FIELDS


def normalize_email(email):
    """Lower-case and validate an email address."""
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise BadRequest("A valid email is required.")
    return email.strip().lower()


def email_in_use(email, exclude_id=None):
    """True if any account, active or in the trash, holds the email."""
    query = Account.query.filter(Account.email == email)
    if exclude_id is not None:
        query = query.filter(Account.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def parse_role(value, allowed):
    try:
        role = AccountRole.from_string(value)
    except ValueError:
        raise BadRequest(f"role must be one of: {', '.join(r.value for r in allowed)}.")
    if role not in allowed:
        raise Forbidden(f"Accounts with role {role.value} cannot be created here.")
    return role


def build_account(data, allowed_roles, default_password=None):
    """Validate a registration payload and return an unsaved Account."""
    if not isinstance(data, dict):
        raise BadRequest("Each account must be an object.")
    role = parse_role(data.get('role'), allowed_roles)
    email = normalize_email(data.get('email'))

    password = data.get('password') or default_password
    if not isinstance(password, str) or not password:
        raise BadRequest(f"Password is required for {email}.")

    account = Account(email=email, role=role, password_hash=hash_password(password), status='Active')
    apply_fields(account, data, fields_for(role))
    if not account.status:
        account.status = 'Active'
    if not account.date_of_joining:
        account.date_of_joining = _utc_now().isoformat()
    return account


def _commit_new_accounts():
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("An email in the registration list is already in use.")


# -------------------- REGISTRATION --------------------

def register_accounts(payload):
    """
    Register a list of student and teacher accounts in one transaction.

    Each new student notifies the first administrator. Returns the created
    accounts.
    """
    if not isinstance(payload, list) or not payload:
        raise BadRequest("Registration data must be a non-empty array of users.")

    accounts = [
        build_account(data, (AccountRole.STUDENT, AccountRole.TEACHER))
        for data in payload
    ]

    emails = [a.email for a in accounts]
    if len(set(emails)) != len(emails):
        raise BadRequest("Duplicate emails found in the registration request.")
    for email in emails:
        if email_in_use(email):
            raise Conflict(
                f'The email "{email}" is already registered. Please try logging in or use a different email.'
            )

    db.session.add_all(accounts)
    db.session.flush()

    admin_mail = []
    for account in accounts:
        if account.role != AccountRole.STUDENT:
            continue
        subject = f"New Student Registration: {account.name}"
        message = (
            f"{account.name} (from parent: {account.father_name or 'n/a'}) has registered. "
            "Open their profile to assign a batch."
        )
        admin = notify_first_admin(subject, message, link=f"/admin/student/{account.id}")
        if admin is not None:
            admin_mail.append((admin, subject, message))

    _commit_new_accounts()
    current_app.logger.info(f"Registered {len(accounts)} accounts: {', '.join(emails)}")

    for admin, subject, message in admin_mail:
        send_notification_mail([admin], subject, message)
    return accounts


def register_admin(data):
    """Create an administrator using a single-use invite code."""
    if not isinstance(data, dict):
        raise BadRequest("Request body must be an object.")
    for key in ('name', 'email', 'password', 'contactNumber', 'inviteCode'):
        if not data.get(key):
            raise BadRequest("All fields are required.")

    invite = AdminInviteCode.query.filter_by(code=str(data['inviteCode']).strip()).first()
    if invite is None or not invite.is_usable():
        raise Forbidden("Invalid or expired invite code.")

    email = normalize_email(data['email'])
    if email_in_use(email):
        raise Conflict("This email is already registered.")

    account = Account(
        name=str(data['name']).strip(),
        email=email,
        role=AccountRole.ADMIN,
        password_hash=hash_password(data['password']),
        contact_number=str(data['contactNumber']).strip(),
        status='Active',
        date_of_joining=_utc_now().isoformat(),
    )
    db.session.add(account)
    db.session.flush()
    invite.used = True
    invite.used_by_account_id = account.id
    _commit_new_accounts()
    current_app.logger.info(f"Administrator {email} registered with invite code {invite.id}")
    return account


def authenticate(email, password):
    """Return the active account matching the credentials, or None."""
    if not isinstance(email, str) or not isinstance(password, str) or not password:
        return None
    account = Account.active().filter_by(email=email.strip().lower()).first()
    if account is None:
        burn_verification(password)
        return None
    if not verify_password(account.password_hash, password):
        return None
    if needs_rehash(account.password_hash):
        account.password_hash = hash_password(password)
        db.session.commit()
    return account


# -------------------- ADMIN MANAGEMENT --------------------

def create_account(data):
    """Administrator-created account of any role; password defaults when omitted."""
    account = build_account(
        data,
        tuple(AccountRole),
        default_password=current_app.config.get('DEFAULT_STUDENT_PASSWORD'),
    )
    if email_in_use(account.email):
        raise Conflict("This email is already in use.")
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("This email is already in use.")
    current_app.logger.info(f"Account {account.id} ({account.role.value}) created by administrator")
    return account


def update_account(account, data, allow_credentials=True):
    """
    Apply a partial update to an account.

    Role is immutable. Email and password change only when
    ``allow_credentials`` is set (administrator edits).
    """
    if not isinstance(data, dict):
        raise BadRequest("Request body must be an object.")
    data = {k: v for k, v in data.items() if k not in PROTECTED_KEYS or (allow_credentials and k == 'password')}

    if allow_credentials:
        if data.get('email'):
            email = normalize_email(data['email'])
            if email_in_use(email, exclude_id=account.id):
                raise Conflict("This email is already in use by another account.")
            account.email = email
        if data.get('password'):
            if not isinstance(data['password'], str):
                raise BadRequest("password must be a string.")
            account.password_hash = hash_password(data['password'])

    apply_fields(account, data, fields_for(account.role), partial=True)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("This email is already in use by another account.")
    return account


def get_active_account_or_404(account_id):
    account = Account.active().filter_by(id=account_id).first()
    if account is None:
        raise NotFound("User not found.")
    return account


def get_trashed_account_or_404(account_id):
    account = Account.query.filter_by(id=account_id, lifecycle_state=AccountState.SOFT_DELETED).first()
    if account is None:
        raise NotFound("User not found in trash.")
    return account


def soft_delete_account(account_id, principal):
    """Move an account to the trash; its email stays reserved."""
    if account_id == principal.id:
        raise BadRequest("You cannot delete your own account.")
    account = get_active_account_or_404(account_id)
    account.lifecycle_state = AccountState.SOFT_DELETED
    account.deleted_at = _utc_now()
    db.session.commit()
    current_app.logger.info(f"Account {account.id} moved to trash by account {principal.id}")
    return account


def restore_account(account_id):
    account = get_trashed_account_or_404(account_id)
    account.lifecycle_state = AccountState.ACTIVE
    account.deleted_at = None
    db.session.commit()
    current_app.logger.info(f"Account {account.id} restored from trash")
    return account


def purge_account(account_id):
    """Permanently remove a trashed account with its notifications, invoices and recipient rows."""
    account = get_trashed_account_or_404(account_id)
    db.session.delete(account)
    db.session.commit()
    current_app.logger.info(f"Account {account_id} permanently deleted")
