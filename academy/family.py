"""
Family resolution.

Students who share a guardian are registered with email aliases of one
address: ``parent@example.com``, ``parent+maya@example.com`` and so on. The
family of a student is every active student whose email normalizes to the
same (local part before "+", domain) key. Families are computed from current
data on every call and never stored.
"""

from sqlalchemy import func

from academy.models import Account, AccountRole


def normalize_family_key(email):
    """
    Return the (base, domain) family key of an email address, or None.

    The base is the local part up to the first "+"; both halves are
    case-folded. Addresses without exactly one "@", or with an empty base or
    domain, have no key.
    """
    if not email:
        return None
    parts = email.strip().lower().split('@')
    if len(parts) != 2:
        return None
    local, domain = parts
    base = local.split('+', 1)[0]
    if not base or not domain:
        return None
    return base, domain


def _escape_like(value):
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def family_members_query(base, domain):
    """Active student accounts whose email could belong to the (base, domain) family."""
    pattern = f"{_escape_like(base)}%@{_escape_like(domain)}"
    return Account.active().filter(
        Account.role == AccountRole.STUDENT,
        func.lower(Account.email).like(pattern, escape='\\'),
    )


def resolve_family(principal):
    """
    Return the set of account ids the principal may act for.

    Teachers and administrators form singleton families. The principal's own
    id is always a member, even for an email that cannot be parsed.
    """
    family = {principal.id}
    if principal.role != AccountRole.STUDENT:
        return family

    key = normalize_family_key(principal.email)
    if key is None:
        return family

    base, domain = key
    # LIKE narrows the candidates; the exact key comparison rejects
    # "parentx@..." matching the "parent%" prefix.
    for account_id, email in family_members_query(base, domain).with_entities(Account.id, Account.email):
        if normalize_family_key(email) == key:
            family.add(account_id)
    return family


def family_accounts(principal):
    """Active accounts of the principal's family, ordered by id."""
    ids = resolve_family(principal)
    return Account.active().filter(Account.id.in_(ids)).order_by(Account.id).all()
