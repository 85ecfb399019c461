from flask import Blueprint, jsonify, request
from flask_login import current_user

from credhub import csrf
from credhub.models import (
    db, Institution, InstitutionStatus, InstitutionUser, MemberRole, Role, LogAction, LogCategory,
)
from credhub.services.activity_logger import log_activity
from credhub.services.institution_service import normalize_type
from credhub.services.user_service import UserService

auth_api_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_api_bp.route('/register', methods=['POST'])
@csrf.exempt
def register():
    """
    Self-service sign-up. Supplying an `institution` object registers the
    account as an institution administrator with a PENDING institution.
    """
    body = request.get_json(silent=True) or {}
    name = body.get('name')
    email = body.get('email')
    password = body.get('password')
    institution_data = body.get('institution') or {}

    if not name or not email or not password:
        return jsonify({'error': 'Missing required fields'}), 400
    if UserService.get_user_by_email(email):
        return jsonify({'error': 'User already exists'}), 409

    role = Role.INSTITUTION if institution_data.get('name') else Role.USER
    user = UserService.create_user(email, password, role=role, name=name,
                                   locale=body.get('locale') or 'en')

    institution = None
    if institution_data.get('name'):
        institution = Institution(
            name=institution_data['name'],
            type=normalize_type(institution_data.get('type')),
            website=institution_data.get('website'),
            address=institution_data.get('address'),
            phone=institution_data.get('phone'),
            status=InstitutionStatus.PENDING,
            is_approved=False,
        )
        db.session.add(institution)
        db.session.flush()
        db.session.add(InstitutionUser(user_id=user.id, institution_id=institution.id, role=MemberRole.ADMIN))
        db.session.commit()

    log_activity(
        action=LogAction.CREATE,
        category=LogCategory.USER,
        details=f"Registered account {user.email}",
        user_id=user.id,
        institution_id=institution.id if institution else None,
        request=request,
    )
    return jsonify({
        'user': user.to_dict(),
        'institution': institution.to_dict() if institution else None,
        'message': 'Registration successful',
    }), 201


@auth_api_bp.route('/session', methods=['GET'])
def session():
    if not current_user.is_authenticated:
        return jsonify({'user': None})
    data = current_user.to_dict()
    data['institutions'] = [
        {'id': m.institution_id, 'name': m.institution.name, 'role': m.role}
        for m in current_user.memberships
    ]
    return jsonify({'user': data})
