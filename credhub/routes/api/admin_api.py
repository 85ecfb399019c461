from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user
from sqlalchemy import or_

from credhub.models import db, User, Role, LogAction, LogCategory
from credhub.routes.api import json_error, pagination_args
from credhub.routes.decorators import api_role_required
from credhub.services.activity_logger import log_admin_action
from credhub.services.audit_service import AuditService
from credhub.services.user_service import UserService

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _log_filters():
    return {
        'category': request.args.get('category'),
        'status': request.args.get('status'),
        'action': request.args.get('action'),
        'user_id': request.args.get('userId'),
        'start_date': request.args.get('startDate'),
        'end_date': request.args.get('endDate'),
        'search': request.args.get('search'),
    }


# --- Users ---

@admin_bp.route('/users', methods=['GET'])
@api_role_required(Role.ADMIN)
def list_users():
    page, limit = pagination_args()
    query = User.query
    if request.args.get('role'):
        query = query.filter(User.role == request.args['role'])
    if request.args.get('search'):
        like = f"%{request.args['search']}%"
        query = query.filter(or_(User.email.ilike(like), User.name.ilike(like)))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        'users': [u.to_dict() for u in users],
        'pagination': {'total': total, 'page': page, 'limit': limit, 'pages': -(-total // limit)},
    })


@admin_bp.route('/users', methods=['POST'])
@api_role_required(Role.ADMIN)
def create_user():
    body = request.get_json(silent=True) or {}
    user = UserService.create_user(
        body.get('email'), body.get('password'),
        role=body.get('role') or Role.USER,
        name=body.get('name'),
    )
    log_admin_action(
        action=LogAction.CREATE,
        category=LogCategory.USER,
        user_id=current_user.id,
        details=f"Created user {user.email} with role {user.role}",
        metadata={'targetUserId': user.id},
        request=request,
    )
    return jsonify(user.to_dict()), 201


@admin_bp.route('/users/<int:user_id>', methods=['PUT'])
@api_role_required(Role.ADMIN)
def update_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return json_error('User not found', 404)
    body = request.get_json(silent=True) or {}
    UserService.update_user(
        user,
        name=body.get('name'),
        email=body.get('email'),
        role=body.get('role'),
        locale=body.get('locale'),
        password=body.get('password'),
        is_active=body.get('isActive'),
    )
    log_admin_action(
        action=LogAction.UPDATE,
        category=LogCategory.USER,
        user_id=current_user.id,
        details=f"Updated user {user.email}",
        metadata={'targetUserId': user.id, 'fields': sorted(k for k in body if k != 'password')},
        request=request,
    )
    return jsonify(user.to_dict())


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@api_role_required(Role.ADMIN)
def delete_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return json_error('User not found', 404)
    email = user.email
    UserService.delete_user(user, current_user)
    log_admin_action(
        action=LogAction.DELETE,
        category=LogCategory.USER,
        user_id=current_user.id,
        details=f"Deleted user {email}",
        metadata={'targetUserId': user_id},
        request=request,
    )
    return jsonify({'message': f'User {email} deleted'})


# --- Activity logs ---

@admin_bp.route('/logs', methods=['GET'])
@api_role_required(Role.ADMIN)
def list_logs():
    page, limit = pagination_args()
    result = AuditService.list_logs(_log_filters(), page=page, limit=limit)
    return jsonify({
        'logs': [log.to_dict() for log in result['logs']],
        'pagination': result['pagination'],
    })


@admin_bp.route('/logs/stats', methods=['GET'])
@api_role_required(Role.ADMIN)
def log_stats():
    return jsonify(AuditService.get_stats())


@admin_bp.route('/logs/export', methods=['GET'])
@api_role_required(Role.ADMIN)
def export_logs():
    fmt = request.args.get('format', 'csv')
    output, mimetype, filename = AuditService.export_logs(_log_filters(), fmt=fmt)
    log_admin_action(
        action=LogAction.DOWNLOAD,
        category=LogCategory.ADMIN,
        user_id=current_user.id,
        details=f"Exported activity logs as {fmt}",
        request=request,
    )
    return send_file(output, mimetype=mimetype, as_attachment=True, download_name=filename)
