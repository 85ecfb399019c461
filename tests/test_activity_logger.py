import pytest
from sqlalchemy.exc import SQLAlchemyError

from credhub.models import db, ActivityLog, LogAction, LogCategory, LogStatus
from credhub.services import activity_logger
from credhub.services.activity_logger import (
    request_metadata,
    log_activity,
    log_certificate_verification,
    log_blockchain_operation,
    log_admin_action,
    log_support_activity,
)


@pytest.fixture
def dispatched(ctx, monkeypatch):
    calls = []
    monkeypatch.setattr(activity_logger, 'dispatch_admin_notification', calls.append)
    return calls


class TestRequestMetadata:
    def test_forwarded_for_wins(self, app):
        headers = {'X-Forwarded-For': '198.51.100.7, 10.0.0.1', 'X-Real-IP': '10.0.0.2', 'User-Agent': 'pytest'}
        with app.test_request_context('/', headers=headers) as rc:
            assert request_metadata(rc.request) == ('198.51.100.7', 'pytest')

    def test_real_ip_fallback(self, app):
        with app.test_request_context('/', headers={'X-Real-IP': '10.0.0.2'}) as rc:
            assert request_metadata(rc.request)[0] == '10.0.0.2'

    def test_defaults_to_loopback(self, app):
        with app.test_request_context('/') as rc:
            assert request_metadata(rc.request)[0] == '127.0.0.1'

    def test_user_agent_is_truncated(self, app):
        with app.test_request_context('/', headers={'User-Agent': 'x' * 400}) as rc:
            assert len(request_metadata(rc.request)[1]) == 255


class TestLogActivity:
    def test_writes_row(self, ctx, dispatched):
        log = log_activity(LogAction.CREATE, LogCategory.SYSTEM, details='hello', metadata={'k': 'v'})
        stored = db.session.get(ActivityLog, log.id)
        assert stored.details == 'hello'
        assert stored.meta == {'k': 'v'}
        assert stored.status == LogStatus.SUCCESS
        assert stored.ip_address is None
        assert dispatched == []

    def test_records_request_origin(self, app, monkeypatch):
        monkeypatch.setattr(activity_logger, 'dispatch_admin_notification', lambda s: None)
        with app.test_request_context('/', headers={'X-Forwarded-For': '198.51.100.7'}) as rc:
            log = log_activity(LogAction.LOGIN, LogCategory.AUTH, request=rc.request)
            assert log.ip_address == '198.51.100.7'
            assert log.user_id is None

    def test_failed_verification_notifies_admins(self, ctx, dispatched):
        log_certificate_verification(certificate_id=None, institution_id=None, success=False, details='nope')
        assert len(dispatched) == 1
        assert dispatched[0]['action'] == LogAction.VERIFY
        assert dispatched[0]['status'] == LogStatus.FAILURE
        assert dispatched[0]['certificate'] is None

    def test_successful_verification_does_not_notify(self, ctx, dispatched):
        log_certificate_verification(certificate_id=None, institution_id=None, success=True)
        assert dispatched == []

    def test_failed_ledger_check_notifies(self, ctx, dispatched):
        log_blockchain_operation('VERIFY', certificate_id=None, institution_id=None, success=False)
        assert [s['action'] for s in dispatched] == [LogAction.BLOCKCHAIN_VERIFY]

    def test_failed_upload_does_not_notify(self, ctx, dispatched):
        log = log_blockchain_operation('UPLOAD', certificate_id=None, institution_id=None, success=False)
        assert log.action == LogAction.BLOCKCHAIN_UPLOAD
        assert dispatched == []

    def test_unknown_blockchain_operation(self, ctx):
        with pytest.raises(ValueError):
            log_blockchain_operation('MINT', certificate_id=None, institution_id=None, success=True)

    def test_database_failure_is_swallowed(self, ctx, dispatched, monkeypatch):
        def broken_commit():
            raise SQLAlchemyError('database is locked')
        monkeypatch.setattr(db.session, 'commit', broken_commit)

        assert log_activity(LogAction.VERIFY, LogCategory.VERIFICATION, status=LogStatus.FAILURE) is None
        assert dispatched == []

    def test_notification_failure_is_swallowed(self, ctx, monkeypatch):
        def broken_dispatch(snapshot):
            raise RuntimeError('smtp down')
        monkeypatch.setattr(activity_logger, 'dispatch_admin_notification', broken_dispatch)

        log = log_certificate_verification(certificate_id=None, institution_id=None, success=False)
        assert log is not None
        assert db.session.get(ActivityLog, log.id) is not None


class TestHelpers:
    def test_admin_action_is_info(self, ctx, dispatched, admin):
        log = log_admin_action(LogAction.UPDATE, LogCategory.USER, user_id=admin.id, details='changed role')
        assert log.status == LogStatus.INFO
        assert log.user_id == admin.id

    def test_support_activity_metadata(self, ctx, dispatched, admin):
        log = log_support_activity('MESSAGE', 42, admin.id, 'Added message', metadata={'extra': True})
        assert log.action == LogAction.ADMIN_ACTION
        assert log.category == LogCategory.SUPPORT
        assert log.meta == {'extra': True, 'supportAction': 'MESSAGE', 'ticketId': 42}
