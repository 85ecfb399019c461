from flask import Blueprint, render_template, redirect, url_for, request
from flask_login import login_required, current_user

from credhub.models import (
    User, Institution, Certificate, SupportTicket, InstitutionStatus, Role, TicketStatus,
    LogAction, LogCategory, LogStatus,
)
from credhub.routes.decorators import role_required
from credhub.routes.locale import register_locale
from credhub.services.audit_service import AuditService
from credhub.services.certificate_service import CertificateService
from credhub.services.support_service import SupportService

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/<locale>/dashboard')
register_locale(dashboard_bp)

ROLE_DASHBOARDS = {
    Role.ADMIN: 'dashboard.admin_dashboard',
    Role.INSTITUTION: 'dashboard.institution_dashboard',
    Role.USER: 'dashboard.user_dashboard',
}


@dashboard_bp.route('')
@login_required
def router():
    return redirect(url_for(ROLE_DASHBOARDS.get(current_user.role, 'dashboard.user_dashboard')))


@dashboard_bp.route('/admin')
@role_required(Role.ADMIN)
def admin_dashboard():
    counts = {
        'users': User.query.count(),
        'institutions': Institution.query.count(),
        'pending_institutions': Institution.query.filter_by(status=InstitutionStatus.PENDING).count(),
        'certificates': Certificate.query.count(),
        'open_tickets': SupportTicket.query.filter(
            SupportTicket.status.notin_([TicketStatus.RESOLVED, TicketStatus.CLOSED])).count(),
    }
    stats = AuditService.get_stats()
    recent_logs = AuditService.list_logs(limit=10)['logs']
    return render_template('dashboard_admin.html', counts=counts, stats=stats, recent_logs=recent_logs)


@dashboard_bp.route('/admin/logs')
@role_required(Role.ADMIN)
def admin_logs():
    filters = {
        'category': request.args.get('category'),
        'status': request.args.get('status'),
        'action': request.args.get('action'),
        'search': request.args.get('search'),
    }
    page = request.args.get('page', 1, type=int)
    result = AuditService.list_logs(filters, page=max(page, 1), limit=50)
    return render_template('admin_logs.html',
                           logs=result['logs'],
                           pagination=result['pagination'],
                           filters=filters,
                           actions=LogAction.ALL,
                           categories=LogCategory.ALL,
                           statuses=LogStatus.ALL)


@dashboard_bp.route('/institution')
@role_required(Role.INSTITUTION)
def institution_dashboard():
    institutions = [m.institution for m in current_user.memberships]
    result = CertificateService.list_certificates(current_user, limit=10)
    tickets = SupportService.list_tickets(current_user, limit=5)['tickets']
    return render_template('dashboard_institution.html',
                           institutions=institutions,
                           certificates=result['certificates'],
                           total_certificates=result['pagination']['total'],
                           tickets=tickets)


@dashboard_bp.route('/users')
@role_required(Role.USER)
def user_dashboard():
    result = CertificateService.list_certificates(current_user, limit=50)
    tickets = SupportService.list_tickets(current_user, limit=5)['tickets']
    return render_template('dashboard_user.html',
                           certificates=result['certificates'],
                           tickets=tickets)
