from flask import Blueprint, jsonify, request
from flask_login import current_user

from credhub.models import Certificate, LogAction, LogCategory
from credhub.routes.api import json_error
from credhub.routes.decorators import api_login_required
from credhub.services.activity_logger import log_activity
from credhub.services.user_service import UserService

user_bp = Blueprint('user', __name__, url_prefix='/user')


def _memberships(user):
    return [{
        'id': m.id,
        'role': m.role,
        'institutionId': m.institution_id,
        'institution': {
            'id': m.institution.id,
            'name': m.institution.name,
            'logoUrl': m.institution.logo_url,
            'type': m.institution.type,
            'status': m.institution.status,
        },
    } for m in user.memberships]


@user_bp.route('/profile', methods=['GET'])
@api_login_required
def get_profile():
    data = current_user.to_dict()
    data['updatedAt'] = current_user.updated_at.isoformat() if current_user.updated_at else None
    data['institutionUsers'] = _memberships(current_user)
    return jsonify(data)


@user_bp.route('/profile', methods=['PUT'])
@api_login_required
def update_profile():
    body = request.get_json(silent=True) or {}
    password = body.get('newPassword')
    if password and not UserService.verify_password(current_user, body.get('currentPassword')):
        return json_error('Current password is incorrect', 400)

    UserService.update_user(current_user, name=body.get('name'), locale=body.get('locale'), password=password)
    log_activity(
        action=LogAction.UPDATE,
        category=LogCategory.USER,
        details="Updated own profile",
        metadata={'fields': sorted(k for k in ('name', 'locale', 'newPassword') if body.get(k))},
        user_id=current_user.id,
        request=request,
    )
    return jsonify(current_user.to_dict())


@user_bp.route('/certificates', methods=['GET'])
@api_login_required
def my_certificates():
    certificates = (Certificate.query
                    .filter(Certificate.recipient_email == current_user.email.lower())
                    .order_by(Certificate.issue_date.desc())
                    .all())
    return jsonify({'certificates': [c.to_dict() for c in certificates]})


@user_bp.route('/institutions', methods=['GET'])
@api_login_required
def my_institutions():
    return jsonify({'institutions': _memberships(current_user)})
