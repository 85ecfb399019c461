from flask import Blueprint, jsonify, request
from flask_login import current_user

from credhub.models import Role, TicketPriority
from credhub.routes.api import pagination_args
from credhub.routes.decorators import api_login_required, api_role_required
from credhub.services.support_service import SupportService

support_bp = Blueprint('support', __name__, url_prefix='/support')


def _request_data():
    """Tickets and messages arrive as JSON, or as multipart when files are attached."""
    if request.is_json:
        return request.get_json(silent=True) or {}, []
    return request.form.to_dict(), request.files.getlist('attachments')


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value or '').lower() in ('1', 'true', 'on', 'yes')


@support_bp.route('/tickets', methods=['GET'])
@api_login_required
def list_tickets():
    page, limit = pagination_args(default_limit=10)
    result = SupportService.list_tickets(
        current_user,
        status=request.args.get('status'),
        priority=request.args.get('priority'),
        category=request.args.get('category'),
        user_id=request.args.get('userId', type=int),
        assigned_to_id=request.args.get('assignedToId', type=int),
        institution_id=request.args.get('institutionId', type=int),
        search=request.args.get('search'),
        page=page,
        limit=limit,
    )
    return jsonify({
        'tickets': [t.to_dict() for t in result['tickets']],
        'pagination': result['pagination'],
    })


@support_bp.route('/tickets', methods=['POST'])
@api_login_required
def create_ticket():
    data, files = _request_data()
    institution_id = data.get('institutionId')
    ticket = SupportService.create_ticket(
        current_user,
        title=data.get('title'),
        description=data.get('description'),
        category=data.get('category') or 'GENERAL',
        priority=data.get('priority') or TicketPriority.MEDIUM,
        institution_id=int(institution_id) if institution_id else None,
        related_to=data.get('relatedTo'),
        attachments=files,
    )
    return jsonify(ticket.to_dict()), 201


@support_bp.route('/tickets/<int:ticket_id>', methods=['GET'])
@api_login_required
def get_ticket(ticket_id):
    ticket = SupportService.get_ticket(current_user, ticket_id)
    return jsonify(ticket.to_dict(include_messages=True, include_internal=current_user.role == Role.ADMIN))


@support_bp.route('/tickets/<int:ticket_id>', methods=['PATCH'])
@api_role_required(Role.ADMIN)
def update_ticket(ticket_id):
    body = request.get_json(silent=True) or {}
    ticket = SupportService.update_ticket(
        current_user, ticket_id,
        status=body.get('status'),
        priority=body.get('priority'),
        category=body.get('category'),
        assigned_to_id=body.get('assignedToId'),
        unassign='assignedToId' in body and body['assignedToId'] is None,
    )
    return jsonify(ticket.to_dict(include_messages=True, include_internal=True))


@support_bp.route('/tickets/<int:ticket_id>/messages', methods=['POST'])
@api_login_required
def add_message(ticket_id):
    data, files = _request_data()
    message = SupportService.add_message(
        current_user, ticket_id,
        content=data.get('content'),
        is_internal=_flag(data.get('isInternal')),
        attachments=files,
    )
    return jsonify(message.to_dict()), 201
