"""
Access guard for family-scoped resources.

Non-admin principals may act on accounts in their own family only. Denials on
family-scoped lookups are indistinguishable from missing records so the
existence of other families' accounts is never revealed.
"""

from sqlalchemy import or_, and_, exists
from werkzeug.exceptions import NotFound

from academy.family import resolve_family
from academy.models import Account, AccountRole, ContentRecipient


def authorize(principal, target_account_id):
    """True if the principal may act on the target account."""
    if principal.role == AccountRole.ADMIN:
        return True
    return target_account_id in resolve_family(principal)


def authorize_content(principal, item):
    """
    True if the principal may see a content item.

    Items without recipients are visible to everyone; otherwise the recipient
    set must include a member of the principal's family.
    """
    if principal.role == AccountRole.ADMIN:
        return True
    recipients = set(item.recipient_ids)
    if not recipients:
        return True
    return not recipients.isdisjoint(resolve_family(principal))


def family_account_or_404(principal, account_id, message="Student not found."):
    """Load an active account the principal may act on, or raise NotFound."""
    if not authorize(principal, account_id):
        raise NotFound(message)
    account = Account.active().filter_by(id=account_id).first()
    if account is None:
        raise NotFound(message)
    return account


def visible_content_query(model, principal):
    """
    Query over the content items of ``model`` visible to the principal.

    Evaluated in the database with the same rule as authorize_content().
    """
    query = model.query
    if principal.role == AccountRole.ADMIN:
        return query

    family_ids = resolve_family(principal)
    item_recipients = and_(
        ContentRecipient.content_kind == model.kind,
        ContentRecipient.content_id == model.id,
    )
    has_recipients = exists().where(item_recipients)
    has_family_recipient = exists().where(
        and_(item_recipients, ContentRecipient.account_id.in_(family_ids))
    )
    return query.filter(or_(~has_recipients, has_family_recipient))


def visible_content(model, principal):
    return visible_content_query(model, principal).order_by(*model.feed_order()).all()
