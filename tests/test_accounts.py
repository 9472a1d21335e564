"""
Tests for registration, login and the account lifecycle.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from academy import db
from academy.auth import SESSION_LIFETIME
from academy.models import Account, AccountRole, AccountState, AdminInviteCode, Notification
from conftest import TEST_PASSWORD


def _student(name, email, **extra):
    data = {'name': name, 'email': email, 'password': 'pw-123456', 'role': 'Student'}
    data.update(extra)
    return data


@pytest.fixture
def admin(make_account):
    return make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)


class TestRegistration:

    def test_registers_siblings_in_one_request(self, client, admin, sent_mail):
        resp = client.post('/api/register', json=[
            _student('Asha', 'Parent@X.com', courses=['Vocal'], fatherName='Raj'),
            _student('Ravi', 'parent+ravi@x.com'),
        ])

        assert resp.status_code == 201
        assert resp.json['message'] == 'Registration successful'
        emails = [u['email'] for u in resp.json['users']]
        assert emails == ['parent@x.com', 'parent+ravi@x.com']
        assert resp.json['users'][0]['courses'] == ['Vocal']
        assert all('passwordHash' not in u for u in resp.json['users'])

        notes = Notification.query.filter_by(account_id=admin.id).order_by(Notification.id).all()
        assert [n.subject for n in notes] == [
            'New Student Registration: Asha',
            'New Student Registration: Ravi',
        ]
        asha_id = resp.json['users'][0]['id']
        assert notes[0].link == f'/admin/student/{asha_id}'
        assert [m['to'] for m in sent_mail] == ['admin@academy.test', 'admin@academy.test']

    def test_teacher_registration_does_not_notify(self, client, admin, sent_mail):
        resp = client.post('/api/register', json=[{
            'name': 'Guru', 'email': 'guru@academy.test', 'password': 'pw-123456',
            'role': 'Teacher', 'courseExpertise': ['Vocal'], 'employmentType': 'Part-time',
        }])
        assert resp.status_code == 201
        assert resp.json['users'][0]['courseExpertise'] == ['Vocal']
        assert Notification.query.count() == 0

    def test_duplicate_emails_in_request(self, client):
        resp = client.post('/api/register', json=[
            _student('Asha', 'parent@x.com'),
            _student('Asha Again', 'PARENT@x.com'),
        ])
        assert resp.status_code == 400
        assert resp.json['message'] == 'Duplicate emails found in the registration request.'
        assert Account.query.count() == 0

    def test_existing_email_rejects_whole_request(self, client, make_account):
        make_account('Asha', 'parent@x.com')
        resp = client.post('/api/register', json=[
            _student('Ravi', 'parent+ravi@x.com'),
            _student('Asha', 'parent@x.com'),
        ])
        assert resp.status_code == 409
        assert Account.query.count() == 1

    def test_trashed_account_keeps_email_reserved(self, client, make_account):
        asha = make_account('Asha', 'parent@x.com')
        asha.lifecycle_state = AccountState.SOFT_DELETED
        db.session.commit()

        resp = client.post('/api/register', json=[_student('Asha', 'parent@x.com')])
        assert resp.status_code == 409

    def test_public_registration_cannot_create_admins(self, client):
        resp = client.post('/api/register', json=[{
            'name': 'Sneaky', 'email': 'sneaky@x.com', 'password': 'pw', 'role': 'Admin',
        }])
        assert resp.status_code == 403
        assert Account.query.count() == 0

    @pytest.mark.parametrize('payload', [
        {'name': 'Asha', 'email': 'parent@x.com', 'password': 'pw'},
        [],
        [{'name': 'Asha', 'email': 'parent@x.com', 'role': 'Student'}],
        [{'name': 'Asha', 'email': 'not-an-email', 'password': 'pw', 'role': 'Student'}],
        [{'email': 'parent@x.com', 'password': 'pw', 'role': 'Student'}],
        [{'name': 'Asha', 'email': 'parent@x.com', 'password': 'pw', 'role': 'Student', 'grade': 'Grade 9'}],
    ])
    def test_invalid_registrations(self, client, payload):
        resp = client.post('/api/register', json=payload)
        assert resp.status_code == 400
        assert Account.query.count() == 0

    def test_check_email(self, client, make_account):
        make_account('Asha', 'parent@x.com')
        assert client.post('/api/users/check-email', json={'email': 'PARENT@x.com'}).json == {'exists': True}
        assert client.post('/api/users/check-email', json={'email': 'new@x.com'}).json == {'exists': False}


class TestAdminRegistration:

    def _payload(self, code='WELCOME'):
        return {
            'name': 'Second Admin',
            'email': 'second@academy.test',
            'password': 'pw-123456',
            'contactNumber': '9876543210',
            'inviteCode': code,
        }

    def test_invite_code_is_single_use(self, client):
        db.session.add(AdminInviteCode(code='WELCOME'))
        db.session.commit()

        resp = client.post('/api/admin/register', json=self._payload())
        assert resp.status_code == 201
        assert resp.json['role'] == 'Admin'
        invite = AdminInviteCode.query.filter_by(code='WELCOME').one()
        assert invite.used is True
        assert invite.used_by_account_id == resp.json['id']

        again = dict(self._payload(), email='third@academy.test')
        assert client.post('/api/admin/register', json=again).status_code == 403

    def test_expired_code_is_rejected(self, client):
        expired = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=1)
        db.session.add(AdminInviteCode(code='OLD', expires_at=expired))
        db.session.commit()

        resp = client.post('/api/admin/register', json=self._payload('OLD'))
        assert resp.status_code == 403
        assert resp.json['message'] == 'Invalid or expired invite code.'

    def test_missing_fields(self, client):
        payload = self._payload()
        del payload['contactNumber']
        resp = client.post('/api/admin/register', json=payload)
        assert resp.status_code == 400
        assert resp.json['message'] == 'All fields are required.'


class TestLogin:

    def test_login_and_session(self, client, make_account):
        asha = make_account('Asha', 'parent@x.com')

        resp = client.post('/api/login', json={'email': 'Parent@X.com', 'password': TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json['id'] == asha.id
        assert resp.headers['Cache-Control'].startswith('no-store')

        session = client.get('/api/session').json
        assert session['user']['email'] == 'parent@x.com'
        assert session['csrfToken']

    def test_wrong_password(self, client, make_account):
        make_account('Asha', 'parent@x.com')
        resp = client.post('/api/login', json={'email': 'parent@x.com', 'password': 'wrong'})
        assert resp.status_code == 401
        assert resp.json['message'] == 'Invalid email or password.'

    def test_trashed_account_cannot_log_in(self, client, make_account):
        asha = make_account('Asha', 'parent@x.com')
        asha.lifecycle_state = AccountState.SOFT_DELETED
        db.session.commit()
        resp = client.post('/api/login', json={'email': 'parent@x.com', 'password': TEST_PASSWORD})
        assert resp.status_code == 401

    def test_logout_clears_session(self, client, make_account, login):
        login(make_account('Asha', 'parent@x.com'))
        assert client.post('/api/logout').status_code == 200
        assert client.get('/api/session').json['user'] is None
        assert client.get('/api/family/students').status_code == 401

    def test_soft_delete_ends_existing_session(self, client, make_account, login):
        asha = make_account('Asha', 'parent@x.com')
        login(asha)
        assert client.get('/api/family/students').status_code == 200

        asha.lifecycle_state = AccountState.SOFT_DELETED
        db.session.commit()
        assert client.get('/api/family/students').status_code == 401


class TestProfile:

    def test_update_own_profile(self, client, make_account, login):
        asha = make_account('Asha', 'parent@x.com')
        login(asha)

        resp = client.put('/api/profile', json={'city': 'Chennai', 'classPreference': 'Online'})
        assert resp.status_code == 200
        assert resp.json['city'] == 'Chennai'
        assert resp.json['classPreference'] == 'Online'

    def test_update_family_member_keeps_protected_fields(self, client, make_account, login):
        asha = make_account('Asha', 'parent@x.com')
        ravi = make_account('Ravi', 'parent+ravi@x.com')
        login(asha)

        resp = client.put('/api/profile', json={
            'id': ravi.id,
            'city': 'Madurai',
            'role': 'Admin',
            'email': 'hijack@x.com',
            'password': 'new-password',
        })
        assert resp.status_code == 200
        ravi = db.session.get(Account, ravi.id)
        assert ravi.city == 'Madurai'
        assert ravi.role == AccountRole.STUDENT
        assert ravi.email == 'parent+ravi@x.com'

    def test_contact_number_is_encrypted_at_rest(self, client, make_account, login):
        asha = make_account('Asha', 'parent@x.com')
        login(asha)
        client.put('/api/profile', json={'contactNumber': '9876543210'})

        raw = db.session.execute(
            text('SELECT contact_number FROM accounts WHERE id = :id'), {'id': asha.id}
        ).scalar()
        assert raw is not None
        assert b'9876543210' not in bytes(raw)
        assert db.session.get(Account, asha.id).contact_number == '9876543210'

    def test_invalid_choice_is_rejected(self, client, make_account, login):
        login(make_account('Asha', 'parent@x.com'))
        resp = client.put('/api/profile', json={'sex': 'Unknown'})
        assert resp.status_code == 400

    def test_fractional_target_id_is_rejected(self, client, make_account, login):
        asha = make_account('Asha', 'parent@x.com')
        ravi = make_account('Ravi', 'parent+ravi@x.com', city='Madurai')
        login(asha)

        resp = client.put('/api/profile', json={'id': ravi.id + 0.4, 'city': 'Chennai'})
        assert resp.status_code == 400
        assert resp.json['message'] == 'id must be an account id.'
        assert db.session.get(Account, ravi.id).city == 'Madurai'


def test_session_lifetime_matches_auth_setting(app):
    assert app.config['PERMANENT_SESSION_LIFETIME'] == SESSION_LIFETIME
