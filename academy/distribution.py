"""
Content distribution ledger.

Assigning a content item to recipients grows its recipient set and leaves a
durable notification for every recipient. Each operation commits once, so
readers see either the whole assignment or none of it. Mail goes out after the
commit and never affects the outcome.
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest, NotFound

from academy.extensions import db, mailer
from academy.family import resolve_family
from academy.models import (
    Account,
    AccountRole,
    ContentKind,
    ContentRecipient,
    CONTENT_MODELS,
    Notification,
)
from academy.utils.payloads import parse_int


CONTENT_LINKS = {
    ContentKind.EVENT: '/events',
    ContentKind.NOTICE: '/notices',
    ContentKind.GRADE_EXAM: '/grade-exams',
    ContentKind.BOOK_MATERIAL: '/book-materials',
}


# -------------------- VALIDATION --------------------

def parse_content_kind(value):
    try:
        return ContentKind.from_string(value)
    except ValueError:
        raise BadRequest(
            f"Invalid contentType. Expected one of: {', '.join(ContentKind.values())}."
        )


def parse_recipient_ids(value, field_name='userIds'):
    """Return a de-duplicated list of account ids, preserving request order."""
    if not isinstance(value, (list, tuple, set)) or not value:
        raise BadRequest("User IDs are required.")
    ids = []
    for raw in value:
        account_id = parse_int(raw, f"{field_name} must contain account ids.")
        if account_id not in ids:
            ids.append(account_id)
    return ids


def _require_text(subject, message):
    if not isinstance(subject, str) or not subject.strip() or not isinstance(message, str) or not message.strip():
        raise BadRequest("Subject and message are required.")
    return subject.strip(), message.strip()


def get_content_or_404(kind, content_id):
    model = CONTENT_MODELS[kind]
    item = db.session.get(model, content_id)
    if item is None:
        raise NotFound(f"{kind.value} not found.")
    return item


# -------------------- MAIL --------------------

def send_notification_mail(accounts, subject, message):
    """Queue one mail per account; delivery problems are only logged."""
    for account in accounts:
        try:
            html = mailer.render(account.name, subject, message)
            mailer.dispatch(account.email, subject, html)
        except Exception:
            current_app.logger.exception(f"Could not queue mail for account {account.id}")


# -------------------- OPERATIONS --------------------

def _add_recipient(kind, content_id, account_id):
    """Insert one recipient row; a row that already exists is left alone."""
    try:
        with db.session.begin_nested():
            db.session.add(ContentRecipient(content_kind=kind, content_id=content_id, account_id=account_id))
        return True
    except IntegrityError:
        return False


def assign(kind, content_id, recipient_ids, subject, message):
    """
    Add recipients to a content item and notify each of them.

    Recipients already in the set stay there once; every active recipient gets
    a fresh notification on each call. Unknown ids reject the whole request
    before anything is written.

    Returns:
        dict: ``{"notifiedCount": n}``
    """
    kind = parse_content_kind(kind)
    ids = parse_recipient_ids(recipient_ids)
    subject, message = _require_text(subject, message)
    item = get_content_or_404(kind, content_id)

    accounts = Account.query.filter(Account.id.in_(ids)).all()
    found = {a.id for a in accounts}
    missing = [i for i in ids if i not in found]
    if missing:
        raise BadRequest(f"Unknown account ids: {', '.join(str(i) for i in missing)}.")

    existing = {r.account_id for r in item.recipient_query().all()}
    added = 0
    for account_id in ids:
        if account_id not in existing and _add_recipient(kind, item.id, account_id):
            added += 1

    notified = [a for a in sorted(accounts, key=lambda a: ids.index(a.id)) if not a.is_deleted]
    link = CONTENT_LINKS[kind]
    for account in notified:
        db.session.add(Notification(account_id=account.id, subject=subject, message=message, link=link))

    db.session.commit()
    current_app.logger.info(
        f"{kind.value} {item.id} assigned: {added} new recipients, {len(notified)} notified"
    )

    send_notification_mail(notified, subject, message)
    return {"notifiedCount": len(notified)}


def broadcast(recipient_ids, subject, message, link=None):
    """
    Notify accounts directly, without a content item.

    Ids that do not resolve to an active account are ignored; NotFound when
    none do.
    """
    ids = parse_recipient_ids(recipient_ids)
    subject, message = _require_text(subject, message)

    accounts = Account.active().filter(Account.id.in_(ids)).order_by(Account.id).all()
    if not accounts:
        raise NotFound("No valid recipient users found.")

    for account in accounts:
        db.session.add(Notification(account_id=account.id, subject=subject, message=message, link=link))
    db.session.commit()
    current_app.logger.info(f"Broadcast '{subject}' sent to {len(accounts)} accounts")

    send_notification_mail(accounts, subject, message)
    return {"notifiedCount": len(accounts)}


def notify_first_admin(subject, message, link=None):
    """
    Stage a notification for the longest-standing administrator.

    The notification joins the caller's transaction. Returns the admin account
    so the caller can mail it after committing, or None when there is no admin.
    """
    admin = (
        Account.active()
        .filter(Account.role == AccountRole.ADMIN)
        .order_by(Account.id)
        .first()
    )
    if admin is None:
        current_app.logger.warning(f"No administrator to notify about: {subject}")
        return None
    db.session.add(Notification(account_id=admin.id, subject=subject, message=message, link=link))
    return admin


def notifications_for(principal):
    """Notifications of every account in the principal's family, newest first."""
    family = resolve_family(principal)
    return (
        Notification.query
        .filter(Notification.account_id.in_(family))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )


def mark_notification_read(notification_id, principal):
    """Set the read flag on a notification owned by the principal's family."""
    family = resolve_family(principal)
    notification = Notification.query.filter(
        Notification.id == notification_id,
        Notification.account_id.in_(family),
    ).first()
    if notification is None:
        raise NotFound("Notification not found or not permitted.")
    notification.is_read = True
    db.session.commit()
    return notification


def delete_content(item):
    """Remove a content item together with its recipient rows."""
    item.recipient_query().delete(synchronize_session=False)
    db.session.delete(item)
    db.session.commit()
