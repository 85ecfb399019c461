from urllib.parse import urlparse

from flask import Blueprint, render_template, redirect, url_for, flash, request
from flask_login import login_user, logout_user, login_required, current_user

from credhub.models import LogAction, LogCategory, LogStatus
from credhub.routes.locale import register_locale
from credhub.services.activity_logger import log_activity
from credhub.services.user_service import UserService

auth_bp = Blueprint('auth', __name__, url_prefix='/<locale>/auth')
register_locale(auth_bp)


def _safe_next(target):
    # Only same-site relative paths
    if not target:
        return None
    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or not target.startswith('/'):
        return None
    return target


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard.router'))

    if request.method == 'POST':
        email = (request.form.get('email') or '').strip().lower()
        password = request.form.get('password')
        user = UserService.get_user_by_email(email)

        if user and UserService.verify_password(user, password):
            if not user.is_active:
                flash('Account deactivated. Please contact administrator.')
                log_activity(
                    action=LogAction.LOGIN,
                    category=LogCategory.AUTH,
                    status=LogStatus.FAILURE,
                    details=f"Login refused for deactivated account {email}",
                    user_id=user.id,
                    request=request,
                )
                return render_template('login.html'), 403

            login_user(user)
            log_activity(
                action=LogAction.LOGIN,
                category=LogCategory.AUTH,
                details=f"User {user.email} logged in",
                user_id=user.id,
                request=request,
            )
            flash('Logged in successfully.')
            return redirect(_safe_next(request.args.get('next')) or url_for('dashboard.router'))

        log_activity(
            action=LogAction.LOGIN,
            category=LogCategory.AUTH,
            status=LogStatus.FAILURE,
            details="Invalid login attempt",
            metadata={'email': email},
            request=request,
        )
        flash('Invalid email or password.')
        return render_template('login.html'), 401

    return render_template('login.html')


@auth_bp.route('/logout')
@login_required
def logout():
    log_activity(
        action=LogAction.LOGOUT,
        category=LogCategory.AUTH,
        details=f"User {current_user.email} logged out",
        user_id=current_user.id,
        request=request,
    )
    logout_user()
    flash('Logged out.')
    return redirect(url_for('public.index'))
