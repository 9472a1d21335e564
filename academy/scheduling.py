"""
Courses, locations and batch schedules.

A batch groups students of one course under a teacher; its schedule is a list
of timings, each with the students enrolled in that slot.
"""

from flask import current_app
from werkzeug.exceptions import BadRequest, Conflict, NotFound

from academy.extensions import db
from academy.models import (
    Account,
    AccountRole,
    Batch,
    BatchSlot,
    BATCH_MODES,
    BookMaterial,
    Course,
    FeeStructure,
    batch_slot_students,
)
from academy.utils.payloads import Field, apply_fields, parse_int


DEFAULT_COURSES = [
    {
        'name': 'Bharatanatyam',
        'description': 'Explore the grace and storytelling of classical Indian dance.',
        'icon': 'Bharatanatyam',
    },
    {
        'name': 'Vocal',
        'description': 'Develop your singing voice with professional training techniques.',
        'icon': 'Vocal',
    },
    {
        'name': 'Drawing',
        'description': 'Learn to express your creativity through sketching and painting.',
        'icon': 'Drawing',
    },
    {
        'name': 'Abacus',
        'description': 'Enhance mental math skills and concentration with our abacus program.',
        'icon': 'Abacus',
    },
]

COURSE_FIELDS = [
    Field('name', 'name', required=True),
    Field('description', 'description', required=True),
    Field('icon', 'icon', required=True),
]

LOCATION_FIELDS = [
    Field('name', 'name', required=True),
    Field('address', 'address', required=True),
]

BATCH_FIELDS = [
    Field('name', 'name', required=True),
    Field('description', 'description'),
    Field('courseId', 'course_id', 'int', required=True),
    Field('teacherId', 'teacher_id', 'int'),
    Field('mode', 'mode', 'choice', choices=BATCH_MODES),
    Field('locationId', 'location_id', 'int'),
]


def seed_courses():
    """Insert the default courses when the table is empty. Returns the number added."""
    if Course.query.first() is not None:
        return 0
    for data in DEFAULT_COURSES:
        db.session.add(Course(**data))
    db.session.commit()
    current_app.logger.info("No courses found; seeded default courses")
    return len(DEFAULT_COURSES)


def list_courses():
    seed_courses()
    return Course.query.order_by(Course.id).all()


def get_course_or_404(course_id):
    course = db.session.get(Course, course_id)
    if course is None:
        raise NotFound("Course not found.")
    return course


def edit_course(course, data):
    """
    Apply a partial course update.

    Fee structures, batches, book materials and account course lists carry
    the course name and follow a rename. Issued invoices keep the name they
    were billed under.
    """
    old_name = course.name
    apply_fields(course, data, COURSE_FIELDS, partial=True)
    if course.name != old_name:
        for model in (FeeStructure, Batch, BookMaterial):
            model.query.filter_by(course_id=course.id).update(
                {model.course_name: course.name}, synchronize_session='fetch'
            )
        for account in Account.query.filter(Account.role.in_((AccountRole.STUDENT, AccountRole.TEACHER))):
            for attr in ('courses', 'course_expertise'):
                names = getattr(account, attr) or []
                if old_name in names:
                    setattr(account, attr, [course.name if n == old_name else n for n in names])
        current_app.logger.info(f"Course {course.id} renamed from {old_name!r} to {course.name!r}")
    db.session.commit()
    return course


def remove_course(course):
    """Delete a course nothing refers to any more."""
    for model, label in ((FeeStructure, 'a fee structure'), (Batch, 'batches'), (BookMaterial, 'book materials')):
        if db.session.query(model.query.filter_by(course_id=course.id).exists()).scalar():
            raise Conflict(f"Course is in use by {label} and cannot be deleted.")
    db.session.delete(course)
    db.session.commit()


# -------------------- BATCHES --------------------

def _parse_schedule(schedule):
    """Validate ``[{"timing": str, "studentIds": [int]}]`` and return slot objects."""
    if not isinstance(schedule, list):
        raise BadRequest("schedule must be an array.")
    slots = []
    for entry in schedule:
        if not isinstance(entry, dict) or not isinstance(entry.get('timing'), str) or not entry['timing'].strip():
            raise BadRequest("Each schedule entry needs a timing.")
        raw_ids = entry.get('studentIds') or []
        if not isinstance(raw_ids, list):
            raise BadRequest("studentIds must be an array.")
        ids = sorted({parse_int(i, "studentIds must contain account ids.") for i in raw_ids})
        students = []
        if ids:
            students = Account.active().filter(
                Account.id.in_(ids), Account.role == AccountRole.STUDENT
            ).all()
            if len(students) != len(ids):
                raise BadRequest("studentIds must reference active students.")
        slots.append(BatchSlot(timing=entry['timing'].strip(), students=students))
    return slots


def apply_batch_payload(batch, data, partial=False):
    with db.session.no_autoflush:
        apply_fields(batch, data, BATCH_FIELDS, partial=partial)

        course = get_course_or_404(batch.course_id)
        batch.course_name = course.name

        if batch.teacher_id is not None:
            teacher = Account.active().filter_by(id=batch.teacher_id, role=AccountRole.TEACHER).first()
            if teacher is None:
                raise BadRequest("teacherId must reference an active teacher.")

        if 'schedule' in data or not partial:
            batch.slots = _parse_schedule(data.get('schedule') or [])
    return batch


def enrollments_for(student_id):
    """Batches the student is scheduled in, with the student's timings in each."""
    slots = (
        BatchSlot.query
        .join(batch_slot_students, batch_slot_students.c.slot_id == BatchSlot.id)
        .filter(batch_slot_students.c.student_id == student_id)
        .order_by(BatchSlot.batch_id, BatchSlot.id)
        .all()
    )
    by_batch = {}
    for slot in slots:
        by_batch.setdefault(slot.batch_id, (slot.batch, []))[1].append(slot.timing)

    enrollments = []
    for batch, timings in by_batch.values():
        enrollments.append({
            'batchId': batch.id,
            'batchName': batch.name,
            'courseName': batch.course_name,
            'timings': timings,
            'teacher': {'id': batch.teacher.id, 'name': batch.teacher.name} if batch.teacher else None,
            'mode': batch.mode,
            'location': batch.location.to_dict() if batch.location else None,
        })
    return enrollments


def get_batch_or_404(batch_id):
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        raise NotFound("Batch not found.")
    return batch
