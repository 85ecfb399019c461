import smtplib
from datetime import datetime

import pytest

from credhub.models import Role
from credhub.services import notification_service
from credhub.services.notification_service import (
    should_notify_admins,
    build_alert_email,
    send_email_notification,
    notify_admins_of_suspicious_activity,
    dispatch_admin_notification,
)
from conftest import make_user


def snapshot(**overrides):
    data = {
        'id': 1,
        'action': 'VERIFY',
        'category': 'VERIFICATION',
        'status': 'FAILURE',
        'details': "Verification failed: no certificate for 'abc'",
        'ip_address': '203.0.113.9',
        'created_at': datetime(2024, 5, 1, 12, 30),
        'certificate': None,
        'user': None,
    }
    data.update(overrides)
    return data


class FakeSMTP:
    instances = []
    extensions = {'starttls'}

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name.lower() in self.extensions

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, sender, recipients, message):
        self.sent.append((sender, recipients, message))


@pytest.fixture
def smtp_config(ctx, monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setitem(ctx.config, 'SMTP_HOST', 'smtp.example.com')
    monkeypatch.setitem(ctx.config, 'SMTP_USER', 'mailer')
    monkeypatch.setitem(ctx.config, 'SMTP_PASSWORD', 'secret')
    monkeypatch.setattr(smtplib, 'SMTP', FakeSMTP)
    return ctx


class TestShouldNotifyAdmins:
    def test_failed_verification_notifies(self):
        assert should_notify_admins(snapshot()) is True

    def test_failed_ledger_check_notifies_regardless_of_category(self):
        assert should_notify_admins(snapshot(action='BLOCKCHAIN_VERIFY', category='BLOCKCHAIN')) is True
        assert should_notify_admins(snapshot(action='BLOCKCHAIN_VERIFY', category='SYSTEM')) is True

    def test_successful_verification_does_not_notify(self):
        assert should_notify_admins(snapshot(status='SUCCESS')) is False

    def test_verify_failure_outside_verification_category_does_not_notify(self):
        assert should_notify_admins(snapshot(category='CERTIFICATE')) is False

    def test_other_failures_do_not_notify(self):
        assert should_notify_admins(snapshot(action='LOGIN', category='AUTH')) is False
        assert should_notify_admins(snapshot(action='BLOCKCHAIN_UPLOAD', category='BLOCKCHAIN')) is False


class TestAlertEmail:
    def test_subject_and_logs_link(self, ctx):
        subject, html = build_alert_email(snapshot())
        assert subject == 'Suspicious Activity Alert: VERIFY - VERIFICATION'
        assert 'http://testserver/en/dashboard/admin/logs' in html
        assert '203.0.113.9' in html

    def test_certificate_and_user_sections(self, ctx):
        _, html = build_alert_email(snapshot(
            certificate={'title': 'BSc Physics', 'recipient_name': 'Alice', 'recipient_email': 'alice@example.com',
                         'verification_id': 'abc-123'},
            user={'name': 'Bob', 'email': 'bob@example.com'},
        ))
        assert 'BSc Physics' in html
        assert 'abc-123' in html
        assert 'bob@example.com' in html


class TestSendEmail:
    def test_skipped_when_smtp_not_configured(self, ctx, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError('SMTP must not be contacted')
        monkeypatch.setattr(smtplib, 'SMTP', fail)
        assert send_email_notification('admin@example.com', 'Subject', '<p>hi</p>') is False

    def test_sends_with_starttls(self, smtp_config):
        assert send_email_notification('admin@example.com', 'Subject', '<p>hi</p>') is True
        server = FakeSMTP.instances[0]
        assert server.host == 'smtp.example.com'
        assert server.started_tls is True
        assert server.logged_in == ('mailer', 'secret')
        sender, recipients, message = server.sent[0]
        assert recipients == ['admin@example.com']
        assert 'Subject: Subject' in message

    def test_plain_relay_without_starttls(self, smtp_config, monkeypatch):
        monkeypatch.setattr(FakeSMTP, 'extensions', set())
        assert send_email_notification('admin@example.com', 'Subject', '<p>hi</p>') is True
        server = FakeSMTP.instances[0]
        assert server.started_tls is False
        assert len(server.sent) == 1

    def test_send_failure_is_swallowed(self, smtp_config, monkeypatch):
        def broken_sendmail(self, *args):
            raise smtplib.SMTPException('boom')
        monkeypatch.setattr(FakeSMTP, 'sendmail', broken_sendmail)
        assert send_email_notification('admin@example.com', 'Subject', '<p>hi</p>') is False


class TestNotifyAdmins:
    def test_one_email_per_admin(self, ctx, monkeypatch):
        make_user('root@example.com', role=Role.ADMIN)
        make_user('ops@example.com', role=Role.ADMIN)
        make_user('alice@example.com', role=Role.USER)

        sent = []
        monkeypatch.setattr(notification_service, 'send_email_notification',
                            lambda to, subject, html: sent.append((to, subject)) or True)

        assert notify_admins_of_suspicious_activity(snapshot()) == 2
        assert sorted(to for to, _ in sent) == ['ops@example.com', 'root@example.com']

    def test_no_admins_sends_nothing(self, ctx, monkeypatch):
        monkeypatch.setattr(notification_service, 'send_email_notification',
                            lambda *a: pytest.fail('no admin to notify'))
        assert notify_admins_of_suspicious_activity(snapshot()) == 0

    def test_errors_are_swallowed(self, ctx, monkeypatch):
        make_user('root@example.com', role=Role.ADMIN)

        def explode(snapshot):
            raise RuntimeError('template missing')
        monkeypatch.setattr(notification_service, 'build_alert_email', explode)
        assert notify_admins_of_suspicious_activity(snapshot()) == 0

    def test_dispatch_runs_inline_when_async_disabled(self, ctx, monkeypatch):
        calls = []
        monkeypatch.setattr(notification_service, 'notify_admins_of_suspicious_activity', calls.append)
        assert dispatch_admin_notification(snapshot()) is None
        assert len(calls) == 1

    def test_dispatch_uses_background_thread(self, ctx, monkeypatch):
        calls = []
        monkeypatch.setitem(ctx.config, 'NOTIFY_ASYNC', True)
        monkeypatch.setattr(notification_service, 'notify_admins_of_suspicious_activity', calls.append)
        thread = dispatch_admin_notification(snapshot())
        thread.join(timeout=5)
        assert calls == [snapshot()]
