"""
Tests for content assignment, broadcasts and family notification streams.
"""
import smtplib
from datetime import datetime

import pytest
from werkzeug.exceptions import BadRequest, NotFound

from academy import db
from academy.access import authorize_content
from academy.auth import principal_for
from academy.distribution import assign, broadcast, mark_notification_read, notifications_for
from academy.extensions import mailer
from academy.family import resolve_family
from academy.models import (
    AccountRole,
    AccountState,
    BookMaterial,
    ContentRecipient,
    Course,
    Event,
    GradeExam,
    Notification,
)


def _create_event(title='Annual Day'):
    event = Event(
        title=title,
        description='Performances by every batch.',
        date=datetime(2025, 3, 20, 10, 0),
        location='Main Hall',
    )
    db.session.add(event)
    db.session.commit()
    return event


@pytest.fixture
def siblings(make_account):
    parent = make_account('Asha', 'parent@x.com')
    sibling = make_account('Ravi', 'parent+child2@x.com')
    return parent, sibling


class TestAssign:

    def test_annual_day_reaches_both_siblings(self, client, siblings, make_account, sent_mail):
        parent, sibling = siblings
        outsider = make_account('Meera', 'someone@y.com')
        assert resolve_family(principal_for(parent)) == {parent.id, sibling.id}
        assert resolve_family(principal_for(sibling)) == {parent.id, sibling.id}

        event = _create_event()
        result = assign('Event', event.id, [parent.id, sibling.id], 'Annual Day', 'Join us on stage!')

        assert result == {'notifiedCount': 2}
        assert event.recipient_ids == sorted([parent.id, sibling.id])
        for account in (parent, sibling):
            notes = Notification.query.filter_by(account_id=account.id).all()
            assert len(notes) == 1
            assert notes[0].subject == 'Annual Day'
            assert notes[0].link == '/events'
            assert notes[0].is_read is False
        assert not authorize_content(principal_for(outsider), event)
        assert sorted(m['to'] for m in sent_mail) == ['parent+child2@x.com', 'parent@x.com']

    def test_repeat_assignment_keeps_recipients_unique(self, client, siblings, sent_mail):
        parent, sibling = siblings
        event = _create_event()

        assign('Event', event.id, [parent.id, sibling.id], 'Annual Day', 'First reminder')
        result = assign('Event', event.id, [sibling.id, parent.id, parent.id], 'Annual Day', 'Second reminder')

        assert result == {'notifiedCount': 2}
        assert ContentRecipient.query.count() == 2
        assert event.recipient_ids == sorted([parent.id, sibling.id])
        assert Notification.query.filter_by(account_id=parent.id).count() == 2
        assert Notification.query.filter_by(account_id=sibling.id).count() == 2

    def test_assignment_grows_recipient_set(self, client, siblings, make_account, sent_mail):
        parent, sibling = siblings
        other = make_account('Meera', 'someone@y.com')
        event = _create_event()

        assign('Event', event.id, [parent.id], 'Annual Day', 'Hello')
        assign('Event', event.id, [other.id], 'Annual Day', 'Hello')

        assert event.recipient_ids == sorted([parent.id, other.id])

    def test_unknown_content_writes_nothing(self, client, siblings, sent_mail):
        parent, _ = siblings
        with pytest.raises(NotFound):
            assign('Event', 9999, [parent.id], 'Annual Day', 'Hello')
        assert ContentRecipient.query.count() == 0
        assert Notification.query.count() == 0
        assert sent_mail == []

    def test_unknown_account_writes_nothing(self, client, siblings, sent_mail):
        parent, _ = siblings
        event = _create_event()
        with pytest.raises(BadRequest) as excinfo:
            assign('Event', event.id, [parent.id, 9999], 'Annual Day', 'Hello')
        assert '9999' in excinfo.value.description
        assert ContentRecipient.query.count() == 0
        assert Notification.query.count() == 0

    @pytest.mark.parametrize('kind, ids, subject, message', [
        ('Newsletter', [1], 'Subject', 'Message'),
        ('Event', [], 'Subject', 'Message'),
        ('Event', ['abc'], 'Subject', 'Message'),
        ('Event', [1.7], 'Subject', 'Message'),
        ('Event', ['\u00b2'], 'Subject', 'Message'),
        ('Event', [' 1'], 'Subject', 'Message'),
        ('Event', [1], '', 'Message'),
        ('Event', [1], 'Subject', '   '),
    ])
    def test_invalid_requests_are_rejected(self, client, siblings, kind, ids, subject, message):
        event = _create_event()
        with pytest.raises(BadRequest):
            assign(kind, event.id, ids, subject, message)
        assert Notification.query.count() == 0

    def test_fractional_id_is_not_rounded_to_an_account(self, client, siblings, sent_mail):
        _, sibling = siblings
        event = _create_event()

        with pytest.raises(BadRequest):
            assign('Event', event.id, [sibling.id + 0.7], 'Annual Day', 'Hello')

        assert ContentRecipient.query.count() == 0
        assert Notification.query.count() == 0
        assert sent_mail == []

    def test_soft_deleted_recipient_is_not_notified(self, client, siblings, sent_mail):
        parent, sibling = siblings
        sibling.lifecycle_state = AccountState.SOFT_DELETED
        db.session.commit()
        event = _create_event()

        result = assign('Event', event.id, [parent.id, sibling.id], 'Annual Day', 'Hello')

        assert result == {'notifiedCount': 1}
        assert Notification.query.filter_by(account_id=sibling.id).count() == 0
        assert [m['to'] for m in sent_mail] == ['parent@x.com']

    def test_mail_failure_does_not_fail_assignment(self, client, siblings, monkeypatch):
        class BrokenSMTP:
            def __init__(self, *args, **kwargs):
                raise smtplib.SMTPConnectError(421, 'Service not available')

        monkeypatch.setattr(smtplib, 'SMTP', BrokenSMTP)
        monkeypatch.setattr(mailer, 'host', 'smtp.example.com')
        monkeypatch.setattr(mailer, 'username', 'mailer@example.com')
        monkeypatch.setattr(mailer, 'password', 'secret')
        parent, _ = siblings
        event = _create_event()

        result = assign('Event', event.id, [parent.id], 'Annual Day', 'Hello')

        assert result == {'notifiedCount': 1}
        assert Notification.query.count() == 1

    def test_grade_exam_links_to_its_feed(self, client, siblings, sent_mail):
        parent, _ = siblings
        exam = GradeExam(
            title='Grade 1 Vocal',
            description='Theory and practical',
            exam_date=datetime(2025, 5, 1, 9, 0),
            registration_deadline=datetime(2025, 4, 1),
        )
        db.session.add(exam)
        db.session.commit()

        assign('GradeExam', exam.id, [parent.id], 'Exam registration', 'Register soon')
        assert Notification.query.one().link == '/grade-exams'


class TestSendContentRoute:

    def test_admin_sends_content(self, client, siblings, make_account, login, sent_mail):
        parent, sibling = siblings
        admin = make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)
        event = _create_event()
        login(admin)

        resp = client.post('/api/admin/content/send', json={
            'contentId': event.id,
            'contentType': 'Event',
            'userIds': [parent.id, sibling.id],
            'subject': 'Annual Day',
            'message': 'Join us!',
        })
        assert resp.status_code == 200
        assert resp.json == {'notifiedCount': 2}

    def test_unknown_content_is_not_found(self, client, siblings, make_account, login):
        parent, _ = siblings
        admin = make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)
        login(admin)

        resp = client.post('/api/admin/content/send', json={
            'contentId': 4242,
            'contentType': 'Notice',
            'userIds': [parent.id],
            'subject': 'Holiday',
            'message': 'Closed on Monday',
        })
        assert resp.status_code == 404
        assert resp.json['message'] == 'Notice not found.'

    def test_students_cannot_send_content(self, client, siblings, login):
        parent, sibling = siblings
        event = _create_event()
        login(parent)

        resp = client.post('/api/admin/content/send', json={
            'contentId': event.id,
            'contentType': 'Event',
            'userIds': [sibling.id],
            'subject': 'Annual Day',
            'message': 'Join us!',
        })
        assert resp.status_code == 403
        assert ContentRecipient.query.count() == 0


class TestContentFeeds:

    def test_feed_is_scoped_to_family(self, client, siblings, make_account, login, sent_mail):
        parent, sibling = siblings
        outsider = make_account('Meera', 'someone@y.com')
        private = _create_event('Annual Day')
        public = _create_event('Open House')
        assign('Event', private.id, [sibling.id], 'Annual Day', 'Hello')

        login(parent)
        titles = {e['title'] for e in client.get('/api/events').json}
        assert titles == {'Annual Day', 'Open House'}

        login(outsider)
        titles = {e['title'] for e in client.get('/api/events').json}
        assert titles == {'Open House'}
        assert public.recipient_ids == []

    def test_book_material_feed(self, client, siblings, login):
        parent, _ = siblings
        course = Course(name='Vocal', description='Singing', icon='Vocal')
        db.session.add(course)
        db.session.commit()
        db.session.add(BookMaterial(
            title='Sargam basics', description='Warm-ups', course_id=course.id,
            course_name='Vocal', type='PDF', url='https://example.com/sargam.pdf',
        ))
        db.session.commit()
        login(parent)

        resp = client.get('/api/book-materials')
        assert resp.status_code == 200
        assert resp.json[0]['courseName'] == 'Vocal'
        assert resp.json[0]['contentType'] == 'BookMaterial'


class TestBroadcast:

    def test_broadcast_skips_unknown_ids(self, client, siblings, sent_mail):
        parent, _ = siblings
        result = broadcast([parent.id, 9999], 'Fees', 'Fees are due on the 15th.')
        assert result == {'notifiedCount': 1}
        assert Notification.query.one().account_id == parent.id

    def test_broadcast_without_valid_recipients(self, client, siblings):
        with pytest.raises(NotFound):
            broadcast([9999], 'Fees', 'Fees are due.')

    def test_broadcast_route_requires_ids(self, client, make_account, login):
        admin = make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)
        login(admin)
        resp = client.post('/api/admin/notifications', json={'userIds': [], 'subject': 'S', 'message': 'M'})
        assert resp.status_code == 400
        assert resp.json['message'] == 'User IDs are required.'

    def test_broadcast_route(self, client, siblings, make_account, login, sent_mail):
        parent, sibling = siblings
        admin = make_account('Admin', 'admin@academy.test', role=AccountRole.ADMIN)
        login(admin)
        resp = client.post('/api/admin/notifications', json={
            'userIds': [parent.id, sibling.id],
            'subject': 'Holiday',
            'message': 'The academy is closed on Monday.',
        })
        assert resp.status_code == 200
        assert resp.json['notifiedCount'] == 2
        assert resp.json['message'] == 'Notification sent and stored successfully.'
        assert len(sent_mail) == 2


class TestNotificationStream:

    def test_family_shares_notifications(self, client, siblings, sent_mail):
        parent, sibling = siblings
        broadcast([sibling.id], 'Fees', 'Due soon')

        notes = notifications_for(principal_for(parent))
        assert [n.account_id for n in notes] == [sibling.id]

    def test_family_member_marks_read(self, client, siblings, sent_mail):
        parent, sibling = siblings
        broadcast([sibling.id], 'Fees', 'Due soon')
        note = Notification.query.one()

        mark_notification_read(note.id, principal_for(parent))
        assert note.is_read is True

    def test_outsider_cannot_mark_read(self, client, siblings, make_account, login, sent_mail):
        _, sibling = siblings
        outsider = make_account('Meera', 'someone@y.com')
        broadcast([sibling.id], 'Fees', 'Due soon')
        note = Notification.query.one()
        login(outsider)

        resp = client.put(f'/api/notifications/{note.id}/read')
        assert resp.status_code == 404
        assert resp.json['message'] == 'Notification not found or not permitted.'
        assert note.is_read is False

    def test_notifications_route(self, client, siblings, login, sent_mail):
        parent, sibling = siblings
        broadcast([parent.id, sibling.id], 'Fees', 'Due soon')
        login(parent)

        resp = client.get('/api/notifications')
        assert resp.status_code == 200
        assert {n['userId'] for n in resp.json} == {parent.id, sibling.id}
        assert all(n['read'] is False for n in resp.json)
