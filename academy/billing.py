"""
Billing cycle engine.

Generates the monthly invoices for enrolled students and records payments.
Generation is safe to repeat: an invoice is identified by (student, fee
structure, billing period) and the database enforces that identity, so
overlapping runs never produce duplicates.
"""

import calendar
from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation

import pytz
from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest, NotFound

from academy.extensions import db
from academy.models import (
    Account,
    AccountRole,
    BillingCycle,
    FeeStructure,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
)
from academy.utils.helpers import parse_datetime


DUE_DAY_OF_MONTH = 15


def academy_now():
    """Current time in the academy's timezone."""
    tz_name = current_app.config.get('ACADEMY_TIMEZONE', 'Asia/Kolkata')
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning(f"Invalid ACADEMY_TIMEZONE '{tz_name}', defaulting to UTC.")
        tz = pytz.utc
    return datetime.now(tz)


def billing_period_label(moment):
    """Billing period of a moment, e.g. "March 2025"."""
    return f"{calendar.month_name[moment.month]} {moment.year}"


def _to_utc_naive(moment):
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _insert_invoice(invoice):
    """Insert inside a savepoint; False when a concurrent run already created it."""
    try:
        with db.session.begin_nested():
            db.session.add(invoice)
        return True
    except IntegrityError:
        current_app.logger.info(
            f"Invoice for student {invoice.student_id} / fee {invoice.fee_structure_id} "
            f"({invoice.billing_period}) already exists; skipping"
        )
        return False


def generate_invoices(now=None):
    """
    Create the Pending monthly invoices for the billing period of ``now``.

    Only Monthly fee structures are billed, matched to a student's courses by
    course name. Students that already have an invoice for a fee structure in
    this period are skipped.

    Args:
        now: Moment of the run; defaults to the current academy time.

    Returns:
        dict: ``{"createdCount": n}``
    """
    if now is None:
        now = academy_now()

    period = billing_period_label(now)
    issue_date = _to_utc_naive(now)
    due_date = date(now.year, now.month, DUE_DAY_OF_MONTH)

    fees_by_course = {
        fee.course_name: fee
        for fee in FeeStructure.query.filter_by(billing_cycle=BillingCycle.MONTHLY).all()
    }
    if not fees_by_course:
        current_app.logger.info(f"No monthly fee structures; nothing to bill for {period}")
        return {"createdCount": 0}

    already_billed = {
        (student_id, fee_id)
        for student_id, fee_id in db.session.query(Invoice.student_id, Invoice.fee_structure_id)
        .filter(Invoice.billing_period == period)
    }

    students = Account.active().filter(Account.role == AccountRole.STUDENT).order_by(Account.id).all()
    created = 0
    for student in students:
        for course_name in student.courses or []:
            fee = fees_by_course.get(course_name)
            if fee is None or (student.id, fee.id) in already_billed:
                continue
            invoice = Invoice(
                student_id=student.id,
                fee_structure_id=fee.id,
                course_name=fee.course_name,
                amount=fee.amount,
                currency=fee.currency.value,
                issue_date=issue_date,
                due_date=due_date,
                billing_period=period,
                status=InvoiceStatus.PENDING,
            )
            if _insert_invoice(invoice):
                already_billed.add((student.id, fee.id))
                created += 1

    db.session.commit()
    current_app.logger.info(f"Generated {created} invoices for {period}")
    return {"createdCount": created}


def _parse_amount(value):
    if isinstance(value, bool) or value is None:
        raise BadRequest("amountPaid must be a number.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise BadRequest("amountPaid must be a number.")
    if not amount.is_finite() or amount < 0:
        raise BadRequest("amountPaid must be a non-negative number.")
    return amount


def _optional_text(details, key):
    value = details.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequest(f"{key} must be a string.")
    return value.strip() or None


def pay_invoice(invoice_id, payment_details):
    """
    Record a payment and mark the invoice Paid.

    Paying an already paid invoice overwrites the previous payment details.
    """
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found.")
    if not isinstance(payment_details, dict):
        raise BadRequest("paymentDetails must be an object.")

    try:
        method = PaymentMethod.from_string(payment_details.get('paymentMethod'))
    except ValueError:
        raise BadRequest(
            f"paymentMethod must be one of: {', '.join(PaymentMethod.values())}."
        )
    amount = _parse_amount(payment_details.get('amountPaid'))
    paid_at = parse_datetime(payment_details.get('paymentDate'), 'paymentDate') or _to_utc_naive(
        datetime.now(timezone.utc)
    )
    reference_number = _optional_text(payment_details, 'referenceNumber')
    notes = _optional_text(payment_details, 'notes')

    invoice.status = InvoiceStatus.PAID
    invoice.payment_date = paid_at
    invoice.amount_paid = amount
    invoice.payment_method = method
    invoice.reference_number = reference_number
    invoice.payment_notes = notes
    db.session.commit()

    current_app.logger.info(f"Invoice {invoice.id} marked paid ({method.value}, {amount})")
    return invoice
