"""
Tests for family resolution.

Students registered under email aliases of one address form a family; every
other principal acts for itself only.
"""
import pytest

from academy import db
from academy.auth import Principal, principal_for
from academy.family import family_accounts, normalize_family_key, resolve_family
from academy.models import Account, AccountRole, AccountState


class TestNormalizeFamilyKey:

    @pytest.mark.parametrize('email, expected', [
        ('parent@x.com', ('parent', 'x.com')),
        ('parent+child2@x.com', ('parent', 'x.com')),
        ('Parent+Maya@X.COM', ('parent', 'x.com')),
        ('parent+a+b@x.com', ('parent', 'x.com')),
        ('  parent@x.com ', ('parent', 'x.com')),
    ])
    def test_aliases_share_a_key(self, email, expected):
        assert normalize_family_key(email) == expected

    @pytest.mark.parametrize('email', [
        None,
        '',
        'not-an-email',
        '@x.com',
        'parent@',
        '+child@x.com',
        'a@b@c.com',
    ])
    def test_malformed_addresses_have_no_key(self, email):
        assert normalize_family_key(email) is None


class TestResolveFamily:

    def test_plus_tag_does_not_change_family(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        sibling = make_account('Ravi', 'parent+child2@x.com')
        make_account('Meera', 'other@x.com')

        expected = {parent.id, sibling.id}
        assert resolve_family(principal_for(parent)) == expected
        assert resolve_family(principal_for(sibling)) == expected

        retagged = Principal(id=parent.id, email='PARENT+anything@X.com', role=AccountRole.STUDENT)
        assert resolve_family(retagged) == expected

    def test_self_is_always_included_for_malformed_email(self, client, make_account):
        make_account('Asha', 'parent@x.com')
        for email in ('not-an-email', '@x.com', 'parent@', None):
            principal = Principal(id=999, email=email, role=AccountRole.STUDENT)
            assert resolve_family(principal) == {999}

    def test_prefix_of_base_is_not_a_member(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        make_account('Other', 'parentx@x.com')
        make_account('Other Tagged', 'parentx+kid@x.com')

        assert resolve_family(principal_for(parent)) == {parent.id}

    def test_like_wildcards_in_base_are_literal(self, client, make_account):
        underscored = make_account('Under', 'a_b@x.com')
        make_account('Lookalike', 'axb@x.com')

        assert resolve_family(principal_for(underscored)) == {underscored.id}

    def test_other_domain_is_not_a_member(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        make_account('Elsewhere', 'parent+kid@y.com')

        assert resolve_family(principal_for(parent)) == {parent.id}

    def test_soft_deleted_members_are_excluded(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        sibling = make_account('Ravi', 'parent+child2@x.com')
        sibling.lifecycle_state = AccountState.SOFT_DELETED
        db.session.commit()

        assert resolve_family(principal_for(parent)) == {parent.id}

    @pytest.mark.parametrize('role', [AccountRole.TEACHER, AccountRole.ADMIN])
    def test_staff_families_are_singletons(self, client, make_account, role):
        make_account('Asha', 'parent@x.com')
        staff = make_account('Staff', 'parent+staff@x.com', role=role)

        assert resolve_family(principal_for(staff)) == {staff.id}

    def test_students_do_not_absorb_staff_aliases(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        make_account('Teacher', 'parent+teach@x.com', role=AccountRole.TEACHER)

        assert resolve_family(principal_for(parent)) == {parent.id}

    def test_family_accounts_are_ordered_by_id(self, client, make_account):
        parent = make_account('Asha', 'parent@x.com')
        sibling = make_account('Ravi', 'parent+child2@x.com')

        accounts = family_accounts(principal_for(sibling))
        assert [a.id for a in accounts] == [parent.id, sibling.id]


class TestFamilyRoutes:

    def test_family_students_lists_siblings(self, client, make_account, login):
        parent = make_account('Asha', 'parent@x.com')
        sibling = make_account('Ravi', 'parent+child2@x.com')
        make_account('Meera', 'someone@y.com')
        login(sibling)

        resp = client.get('/api/family/students')
        assert resp.status_code == 200
        assert [s['id'] for s in resp.json] == [parent.id, sibling.id]

    def test_family_students_requires_login(self, client):
        resp = client.get('/api/family/students')
        assert resp.status_code == 401
        assert resp.json['message'] == 'Authentication required.'

    def test_email_edit_moves_account_out_of_family(self, client, make_account, login):
        parent = make_account('Asha', 'parent@x.com')
        sibling = make_account('Ravi', 'parent+kid@x.com')
        admin = make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)

        login(parent)
        assert client.get(f'/api/family/students/{sibling.id}/invoices').status_code == 200

        login(admin)
        resp = client.put(f'/api/admin/users/{sibling.id}', json={'email': 'kid@y.com'})
        assert resp.status_code == 200
        assert resp.json['email'] == 'kid@y.com'

        parent = db.session.get(Account, parent.id)
        sibling = db.session.get(Account, sibling.id)
        assert resolve_family(principal_for(parent)) == {parent.id}
        assert resolve_family(principal_for(sibling)) == {sibling.id}

        login(parent)
        resp = client.get(f'/api/family/students/{sibling.id}/invoices')
        assert resp.status_code == 404
        assert [s['id'] for s in client.get('/api/family/students').json] == [parent.id]
