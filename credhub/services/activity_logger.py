"""
Audit trail writer.

Every write goes through `log_activity`. A failure to record an event is
logged and swallowed so the request that triggered it still completes.
"""
import logging

from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from credhub.models import db, ActivityLog, LogAction, LogCategory, LogStatus
from credhub.services.notification_service import (
    should_notify_admins,
    snapshot_log,
    dispatch_admin_notification,
)

logger = logging.getLogger(__name__)


def request_metadata(request):
    """Return (ip_address, user_agent) for a Flask request."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        ip_address = forwarded.split(',')[0].strip()
    else:
        ip_address = request.headers.get('X-Real-IP') or '127.0.0.1'
    user_agent = request.headers.get('User-Agent') or None
    if user_agent:
        user_agent = user_agent[:255]
    return ip_address, user_agent


def log_activity(action, category, details=None, metadata=None, status=LogStatus.SUCCESS,
                 user_id=None, institution_id=None, certificate_id=None, request=None):
    ip_address = None
    user_agent = None

    try:
        if request is not None:
            ip_address, user_agent = request_metadata(request)
            if user_id is None and current_user and current_user.is_authenticated:
                user_id = current_user.id

        log = ActivityLog(
            action=action,
            category=category,
            status=status,
            details=details,
            meta=metadata,
            ip_address=ip_address,
            user_agent=user_agent,
            user_id=user_id,
            institution_id=institution_id,
            certificate_id=certificate_id,
        )
        db.session.add(log)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"Failed to log activity {action}/{category}")
        return None

    if should_notify_admins(log):
        try:
            dispatch_admin_notification(snapshot_log(log))
        except Exception:
            logger.exception("Error sending notification")

    return log


def log_certificate_verification(certificate_id, institution_id, success, user_id=None,
                                 details=None, metadata=None, request=None):
    return log_activity(
        action=LogAction.VERIFY,
        category=LogCategory.VERIFICATION,
        status=LogStatus.SUCCESS if success else LogStatus.FAILURE,
        certificate_id=certificate_id,
        institution_id=institution_id,
        user_id=user_id,
        details=details,
        metadata=metadata,
        request=request,
    )


def log_blockchain_operation(action, certificate_id, institution_id, success, user_id=None,
                             details=None, metadata=None, request=None):
    if action not in ('VERIFY', 'UPLOAD'):
        raise ValueError(f"Unknown blockchain operation: {action}")
    return log_activity(
        action=LogAction.BLOCKCHAIN_VERIFY if action == 'VERIFY' else LogAction.BLOCKCHAIN_UPLOAD,
        category=LogCategory.BLOCKCHAIN,
        status=LogStatus.SUCCESS if success else LogStatus.FAILURE,
        certificate_id=certificate_id,
        institution_id=institution_id,
        user_id=user_id,
        details=details,
        metadata=metadata,
        request=request,
    )


def log_admin_action(action, category, user_id, details=None, metadata=None, request=None,
                     institution_id=None, certificate_id=None):
    return log_activity(
        action=action,
        category=category,
        user_id=user_id,
        details=details,
        metadata=metadata,
        request=request,
        institution_id=institution_id,
        certificate_id=certificate_id,
        status=LogStatus.INFO,
    )


def log_support_activity(support_action, ticket_id, user_id, details, metadata=None):
    payload = dict(metadata or {})
    payload.update({'supportAction': support_action, 'ticketId': ticket_id})
    return log_activity(
        action=LogAction.ADMIN_ACTION,
        category=LogCategory.SUPPORT,
        details=details,
        metadata=payload,
        user_id=user_id,
        status=LogStatus.SUCCESS,
    )
