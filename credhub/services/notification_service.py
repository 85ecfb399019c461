import logging
import smtplib
import ssl
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import current_app, render_template

from credhub.models import User, Role, LogAction, LogCategory, LogStatus

logger = logging.getLogger(__name__)


def should_notify_admins(log) -> bool:
    """
    Fixed alert rules. `log` may be an ActivityLog row or a snapshot dict.
    """
    action = _field(log, 'action')
    category = _field(log, 'category')
    status = _field(log, 'status')

    # Failed verification attempts
    if action == LogAction.VERIFY and status == LogStatus.FAILURE and category == LogCategory.VERIFICATION:
        return True

    # Failed ledger checks
    if action == LogAction.BLOCKCHAIN_VERIFY and status == LogStatus.FAILURE:
        return True

    return False


def snapshot_log(log) -> dict:
    """
    Copy the parts of an ActivityLog the alert email needs into a plain dict,
    so the mail can be composed after the request's session is gone.
    """
    certificate = log.certificate
    user = log.user
    return {
        'id': log.id,
        'action': log.action,
        'category': log.category,
        'status': log.status,
        'details': log.details,
        'ip_address': log.ip_address,
        'created_at': log.created_at,
        'certificate': {
            'title': certificate.title,
            'recipient_name': certificate.recipient_name,
            'recipient_email': certificate.recipient_email,
            'verification_id': certificate.verification_id,
        } if certificate else None,
        'user': {
            'name': user.name,
            'email': user.email,
        } if user else None,
    }


def send_email_notification(to: str, subject: str, html: str) -> bool:
    """
    Send one HTML email. Returns False when SMTP is not configured or sending failed.
    """
    config = current_app.config
    if not config.get('SMTP_HOST') or not config.get('SMTP_USER'):
        logger.info("Email notification not sent - SMTP not configured")
        return False

    sender = config.get('SMTP_FROM') or config['SMTP_USER']
    message = MIMEMultipart('alternative')
    message['Subject'] = subject
    message['From'] = formataddr(("CredHub", sender))
    message['To'] = to
    message.attach(MIMEText(html, 'html'))

    host = config['SMTP_HOST']
    port = config.get('SMTP_PORT', 587)
    try:
        if config.get('SMTP_SECURE'):
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=10) as server:
                server.login(config['SMTP_USER'], config.get('SMTP_PASSWORD') or '')
                server.sendmail(sender, [to], message.as_string())
        else:
            with smtplib.SMTP(host, port, timeout=10) as server:
                # Plain relays may not offer STARTTLS
                server.ehlo()
                if server.has_extn('starttls'):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
                server.login(config['SMTP_USER'], config.get('SMTP_PASSWORD') or '')
                server.sendmail(sender, [to], message.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email notification to {to}: {e}")
        return False

    logger.info(f"Email notification sent to {to}")
    return True


def build_alert_email(snapshot: dict):
    subject = f"Suspicious Activity Alert: {snapshot['action']} - {snapshot['category']}"
    config = current_app.config
    logs_url = f"{config['APP_PUBLIC_URL'].rstrip('/')}/{config['DEFAULT_LOCALE']}/dashboard/admin/logs"
    html = render_template('emails/suspicious_activity.html', log=snapshot, logs_url=logs_url)
    return subject, html


def notify_admins_of_suspicious_activity(snapshot: dict) -> int:
    """
    Email every admin about a suspicious event. Best effort: errors are logged,
    never raised. Returns the number of emails handed to SMTP.
    """
    try:
        admins = User.query.filter(User.role == Role.ADMIN, User.email.isnot(None)).all()
        if not admins:
            logger.info("No admin users found to notify")
            return 0

        subject, html = build_alert_email(snapshot)

        sent = 0
        for admin in admins:
            if send_email_notification(admin.email, subject, html):
                sent += 1
        return sent
    except Exception:
        logger.exception("Failed to notify admins of suspicious activity")
        return 0


def dispatch_admin_notification(snapshot: dict):
    """
    Fire-and-forget. The caller never waits on SMTP.
    """
    app = current_app._get_current_object()
    if not app.config.get('NOTIFY_ASYNC', True):
        notify_admins_of_suspicious_activity(snapshot)
        return None

    def _run():
        with app.app_context():
            notify_admins_of_suspicious_activity(snapshot)

    thread = threading.Thread(target=_run, name=f"admin-notify-{snapshot.get('id')}", daemon=True)
    thread.start()
    return thread


def _field(log, name):
    if isinstance(log, dict):
        return log.get(name)
    return getattr(log, name, None)
