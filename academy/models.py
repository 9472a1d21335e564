"""
Database models for the academy portal.

All SQLAlchemy models are defined here with their relationships and JSON
serializers. Times are stored as naive UTC in the database.
"""

from datetime import datetime, timezone
import enum

from academy.extensions import db
from academy.utils.encryption import PIIEncryptedType
from academy.utils.helpers import format_utc_iso


def _utc_now():
    """Naive UTC timestamp for column defaults (stored as UTC, see header note)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class LabelledEnum(enum.Enum):
    """Enum whose stored and serialized form is its human-readable value."""

    @classmethod
    def from_string(cls, value):
        """Convert string to enum, raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid {cls.__name__}: {value}")

    @classmethod
    def values(cls):
        return _enum_values(cls)


# -------------------- ENUMS --------------------

class AccountRole(LabelledEnum):
    STUDENT = 'Student'
    TEACHER = 'Teacher'
    ADMIN = 'Admin'


class AccountState(LabelledEnum):
    """Lifecycle of an account row. Permanent removal deletes the row."""
    ACTIVE = 'active'
    SOFT_DELETED = 'soft_deleted'


class Currency(LabelledEnum):
    INR = 'INR'
    USD = 'USD'


class BillingCycle(LabelledEnum):
    MONTHLY = 'Monthly'
    QUARTERLY = 'Quarterly'
    ANNUALLY = 'Annually'


class InvoiceStatus(LabelledEnum):
    PENDING = 'Pending'
    PAID = 'Paid'
    OVERDUE = 'Overdue'


class PaymentMethod(LabelledEnum):
    CASH = 'Cash'
    BANK_TRANSFER = 'Bank Transfer'
    UPI = 'UPI'
    CARD = 'Card'


class ContentKind(LabelledEnum):
    EVENT = 'Event'
    NOTICE = 'Notice'
    GRADE_EXAM = 'GradeExam'
    BOOK_MATERIAL = 'BookMaterial'


ACCOUNT_STATUSES = ('Active', 'Inactive', 'On Hold', 'Graduated')
CLASS_PREFERENCES = ('Online', 'Offline', 'Hybrid')
SEXES = ('Male', 'Female', 'Other')
GRADES = ('Grade 1', 'Grade 2', 'Grade 3')
EMPLOYMENT_TYPES = ('Part-time', 'Full-time')
BATCH_MODES = ('Online', 'Offline')
MATERIAL_TYPES = ('PDF', 'Video', 'YouTube')


# -------------------- LOCATIONS AND COURSES --------------------

class Location(db.Model):
    __tablename__ = 'locations'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'address': self.address}


class Course(db.Model):
    __tablename__ = 'courses'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    icon = db.Column(db.String(120), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description, 'icon': self.icon}


# -------------------- ACCOUNTS --------------------

class Account(db.Model):
    """
    A person with portal access: student, teacher or administrator.

    Guardians are not separate accounts. A guardian signs in with one of the
    student accounts that share an email alias (see academy.family).
    """
    __tablename__ = 'accounts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # Stored lower-cased; uniqueness holds across active and soft-deleted rows
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.Text, nullable=False)
    role = db.Column(db.Enum(AccountRole, values_callable=_enum_values, name='account_role'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='Active')

    # Profile
    class_preference = db.Column(db.String(20), nullable=True)
    photo_url = db.Column(db.Text, nullable=True)
    dob = db.Column(db.String(20), nullable=True)
    sex = db.Column(db.String(10), nullable=True)
    contact_number = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    alternate_contact_number = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    address = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    date_of_joining = db.Column(db.String(40), nullable=True)
    country = db.Column(db.String(80), nullable=True)
    state = db.Column(db.String(80), nullable=True)
    city = db.Column(db.String(80), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    timezone = db.Column(db.String(64), nullable=True)
    preferred_timings = db.Column(db.JSON, nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True)

    # Student
    courses = db.Column(db.JSON, nullable=True)
    father_name = db.Column(db.String(120), nullable=True)
    standard = db.Column(db.String(40), nullable=True)
    school_name = db.Column(db.String(120), nullable=True)
    grade = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Teacher
    course_expertise = db.Column(db.JSON, nullable=True)
    educational_qualifications = db.Column(db.Text, nullable=True)
    employment_type = db.Column(db.String(20), nullable=True)
    years_of_experience = db.Column(db.Integer, nullable=True)
    available_time_slots = db.Column(db.JSON, nullable=True)

    # Lifecycle
    lifecycle_state = db.Column(
        db.Enum(AccountState, values_callable=_enum_values, name='account_state'),
        nullable=False,
        default=AccountState.ACTIVE,
        index=True,
    )
    deleted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    location = db.relationship('Location')
    notifications = db.relationship(
        'Notification', backref='account', lazy='dynamic', cascade='all, delete-orphan'
    )
    invoices = db.relationship(
        'Invoice', backref='student', lazy='dynamic', cascade='all, delete-orphan'
    )
    content_recipients = db.relationship(
        'ContentRecipient', backref='account', lazy='dynamic', cascade='all, delete-orphan'
    )

    @classmethod
    def active(cls):
        """Query over accounts that are not in the trash."""
        return cls.query.filter(cls.lifecycle_state == AccountState.ACTIVE)

    @property
    def is_deleted(self):
        return self.lifecycle_state == AccountState.SOFT_DELETED

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role.value,
            'status': self.status,
            'classPreference': self.class_preference,
            'photoUrl': self.photo_url,
            'dob': self.dob,
            'sex': self.sex,
            'contactNumber': self.contact_number,
            'alternateContactNumber': self.alternate_contact_number,
            'address': self.address,
            'dateOfJoining': self.date_of_joining,
            'country': self.country,
            'state': self.state,
            'city': self.city,
            'postalCode': self.postal_code,
            'timezone': self.timezone,
            'preferredTimings': self.preferred_timings or [],
            'locationId': self.location_id,
            'location': self.location.to_dict() if self.location else None,
            'isDeleted': self.is_deleted,
            'deletedAt': format_utc_iso(self.deleted_at),
        }
        if self.role == AccountRole.STUDENT:
            data.update({
                'courses': self.courses or [],
                'fatherName': self.father_name,
                'standard': self.standard,
                'schoolName': self.school_name,
                'grade': self.grade,
                'notes': self.notes,
            })
        elif self.role == AccountRole.TEACHER:
            data.update({
                'courseExpertise': self.course_expertise or [],
                'educationalQualifications': self.educational_qualifications,
                'employmentType': self.employment_type,
                'yearsOfExperience': self.years_of_experience,
                'availableTimeSlots': self.available_time_slots or [],
            })
        return data

    def __repr__(self):
        return f'<Account {self.id} {self.email} ({self.role.value if self.role else "?"})>'


class AdminInviteCode(db.Model):
    """Single-use code an existing administrator hands out for admin self-registration."""
    __tablename__ = 'admin_invite_codes'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(255), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)
    used = db.Column(db.Boolean, default=False, nullable=False)
    used_by_account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    # All times stored as UTC (see header note)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def is_usable(self, now=None):
        now = now or _utc_now()
        if self.used:
            return False
        return self.expires_at is None or self.expires_at > now


# -------------------- BATCHES --------------------

batch_slot_students = db.Table(
    'batch_slot_students',
    db.Column('slot_id', db.Integer, db.ForeignKey('batch_slots.id', ondelete='CASCADE'), primary_key=True),
    db.Column('student_id', db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), primary_key=True),
)


class Batch(db.Model):
    __tablename__ = 'batches'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    course_name = db.Column(db.String(120), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    mode = db.Column(db.String(20), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True)

    teacher = db.relationship('Account')
    location = db.relationship('Location')
    slots = db.relationship(
        'BatchSlot', backref='batch', cascade='all, delete-orphan', order_by='BatchSlot.id'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'courseId': self.course_id,
            'courseName': self.course_name,
            'teacherId': self.teacher_id,
            'teacher': {'id': self.teacher.id, 'name': self.teacher.name} if self.teacher else None,
            'mode': self.mode,
            'locationId': self.location_id,
            'location': self.location.to_dict() if self.location else None,
            'schedule': [slot.to_dict() for slot in self.slots],
        }


class BatchSlot(db.Model):
    """One timing within a batch and the students enrolled in it."""
    __tablename__ = 'batch_slots'
    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batches.id', ondelete='CASCADE'), nullable=False, index=True)
    timing = db.Column(db.String(120), nullable=False)

    students = db.relationship(
        'Account',
        secondary=batch_slot_students,
        backref=db.backref('batch_slots', lazy='dynamic'),
    )

    def to_dict(self):
        return {'timing': self.timing, 'studentIds': [s.id for s in self.students]}


# -------------------- BILLING --------------------

class FeeStructure(db.Model):
    __tablename__ = 'fee_structures'
    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), unique=True, nullable=False)
    course_name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.Enum(Currency, values_callable=_enum_values, name='currency'), nullable=False)
    billing_cycle = db.Column(
        db.Enum(BillingCycle, values_callable=_enum_values, name='billing_cycle'), nullable=False
    )

    course = db.relationship('Course')

    def to_dict(self):
        return {
            'id': self.id,
            'courseId': self.course_id,
            'courseName': self.course_name,
            'amount': float(self.amount),
            'currency': self.currency.value,
            'billingCycle': self.billing_cycle.value,
        }


class Invoice(db.Model):
    """
    A billing obligation for one student, fee structure and billing period.

    Course name, amount and currency are copied from the fee structure when the
    invoice is issued so later fee edits never change issued invoices.
    """
    __tablename__ = 'invoices'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    fee_structure_id = db.Column(db.Integer, db.ForeignKey('fee_structures.id'), nullable=False)
    course_name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    issue_date = db.Column(db.DateTime, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    billing_period = db.Column(db.String(40), nullable=False)
    status = db.Column(
        db.Enum(InvoiceStatus, values_callable=_enum_values, name='invoice_status'),
        nullable=False,
        default=InvoiceStatus.PENDING,
    )

    # Payment details, set when the invoice is paid
    payment_date = db.Column(db.DateTime, nullable=True)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=True)
    payment_method = db.Column(
        db.Enum(PaymentMethod, values_callable=_enum_values, name='payment_method'), nullable=True
    )
    reference_number = db.Column(db.String(120), nullable=True)
    payment_notes = db.Column(db.Text, nullable=True)

    fee_structure = db.relationship('FeeStructure')

    __table_args__ = (
        db.UniqueConstraint(
            'student_id', 'fee_structure_id', 'billing_period', name='uq_invoices_student_fee_period'
        ),
        db.Index('ix_invoices_student_id', 'student_id'),
    )

    def payment_details(self):
        if self.payment_method is None:
            return None
        return {
            'paymentDate': format_utc_iso(self.payment_date),
            'amountPaid': float(self.amount_paid) if self.amount_paid is not None else None,
            'paymentMethod': self.payment_method.value,
            'referenceNumber': self.reference_number,
            'notes': self.payment_notes,
        }

    def to_dict(self, include_student=False):
        data = {
            'id': self.id,
            'studentId': self.student_id,
            'feeStructureId': self.fee_structure_id,
            'courseName': self.course_name,
            'amount': float(self.amount),
            'currency': self.currency,
            'issueDate': format_utc_iso(self.issue_date),
            'dueDate': self.due_date.isoformat() if self.due_date else None,
            'billingPeriod': self.billing_period,
            'status': self.status.value,
            'paymentDetails': self.payment_details(),
        }
        if include_student and self.student is not None:
            data['student'] = {'id': self.student.id, 'name': self.student.name, 'email': self.student.email}
        return data


# -------------------- NOTIFICATIONS --------------------

class Notification(db.Model):
    """Durable per-recipient message; only the read flag ever changes."""
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    link = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    __table_args__ = (
        db.Index('ix_notifications_account_id', 'account_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.account_id,
            'subject': self.subject,
            'message': self.message,
            'read': self.is_read,
            'link': self.link,
            'createdAt': format_utc_iso(self.created_at),
        }


# -------------------- CONTENT --------------------

class ContentRecipient(db.Model):
    """
    Membership row of a content item's recipient set.

    The unique constraint makes the set duplicate-free; rows are only ever
    added by assignment and removed when the item or account is deleted.
    """
    __tablename__ = 'content_recipients'
    id = db.Column(db.Integer, primary_key=True)
    content_kind = db.Column(
        db.Enum(ContentKind, values_callable=_enum_values, name='content_kind'), nullable=False
    )
    content_id = db.Column(db.Integer, nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('content_kind', 'content_id', 'account_id', name='uq_content_recipients_item_account'),
        db.Index('ix_content_recipients_kind_account', 'content_kind', 'account_id'),
    )


class BroadcastContentMixin:
    """Shared behaviour of the four broadcastable content kinds."""

    kind = None

    def recipient_query(self):
        return ContentRecipient.query.filter_by(content_kind=self.kind, content_id=self.id)

    @property
    def recipient_ids(self):
        return sorted(r.account_id for r in self.recipient_query().all())

    def base_dict(self):
        return {'id': self.id, 'contentType': self.kind.value, 'recipientIds': self.recipient_ids}


class Event(BroadcastContentMixin, db.Model):
    __tablename__ = 'events'
    kind = ContentKind.EVENT
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.DateTime, nullable=False)
    location = db.Column(db.String(255), nullable=False)
    is_online = db.Column(db.Boolean, default=False, nullable=False)

    @classmethod
    def feed_order(cls):
        return [cls.date.desc(), cls.id.desc()]

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'title': self.title,
            'description': self.description,
            'date': format_utc_iso(self.date),
            'location': self.location,
            'isOnline': self.is_online,
        })
        return data


class Notice(BroadcastContentMixin, db.Model):
    __tablename__ = 'notices'
    kind = ContentKind.NOTICE
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    issued_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    @classmethod
    def feed_order(cls):
        return [cls.issued_at.desc(), cls.id.desc()]

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'title': self.title,
            'content': self.content,
            'issuedAt': format_utc_iso(self.issued_at),
        })
        return data


class GradeExam(BroadcastContentMixin, db.Model):
    __tablename__ = 'grade_exams'
    kind = ContentKind.GRADE_EXAM
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    exam_date = db.Column(db.DateTime, nullable=False)
    registration_deadline = db.Column(db.DateTime, nullable=False)
    syllabus_link = db.Column(db.String(500), nullable=True)

    @classmethod
    def feed_order(cls):
        return [cls.exam_date.desc(), cls.id.desc()]

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'title': self.title,
            'description': self.description,
            'examDate': format_utc_iso(self.exam_date),
            'registrationDeadline': format_utc_iso(self.registration_deadline),
            'syllabusLink': self.syllabus_link,
        })
        return data


class BookMaterial(BroadcastContentMixin, db.Model):
    __tablename__ = 'book_materials'
    kind = ContentKind.BOOK_MATERIAL
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    course_name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    data = db.Column(db.Text, nullable=True)

    @classmethod
    def feed_order(cls):
        return [cls.course_name.asc(), cls.title.asc()]

    def to_dict(self):
        data = self.base_dict()
        data.update({
            'title': self.title,
            'description': self.description,
            'courseId': self.course_id,
            'courseName': self.course_name,
            'type': self.type,
            'url': self.url,
            'data': self.data,
        })
        return data


CONTENT_MODELS = {
    ContentKind.EVENT: Event,
    ContentKind.NOTICE: Notice,
    ContentKind.GRADE_EXAM: GradeExam,
    ContentKind.BOOK_MATERIAL: BookMaterial,
}


# -------------------- MISC --------------------

class ContactMessage(db.Model):
    __tablename__ = 'contact_messages'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)


class ErrorLog(db.Model):
    __tablename__ = 'error_logs'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=_utc_now, nullable=False, index=True)
    error_type = db.Column(db.String(100), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    request_path = db.Column(db.String(500), nullable=True)
    request_method = db.Column(db.String(10), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    ip_address = db.Column(db.String(50), nullable=True)
    stack_trace = db.Column(db.Text, nullable=True)
