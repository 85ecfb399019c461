from flask import Blueprint, jsonify, request
from flask_login import current_user

from credhub.models import db, Institution, InstitutionUser, MemberRole, Role
from credhub.routes.api import json_error
from credhub.routes.decorators import api_login_required, api_role_required
from credhub.services.institution_service import InstitutionService
from credhub.services.permissions import can_access_institution, is_institution_admin

institutions_bp = Blueprint('institutions', __name__, url_prefix='/institutions')


def _get_institution(institution_id):
    institution = db.session.get(Institution, institution_id)
    if institution is None:
        raise LookupError('Institution not found')
    return institution


def _payload():
    body = request.get_json(silent=True) or {}
    if 'logoUrl' in body:
        body['logo_url'] = body.pop('logoUrl')
    return body


@institutions_bp.route('', methods=['GET'])
@api_login_required
def list_institutions():
    institutions = InstitutionService.list_institutions(
        current_user, status=request.args.get('status'), search=request.args.get('search'))
    return jsonify({'institutions': [i.to_dict(with_counts=True) for i in institutions]})


@institutions_bp.route('', methods=['POST'])
@api_role_required(Role.ADMIN)
def create_institution():
    institution = InstitutionService.create_institution(current_user, _payload(), request=request)
    return jsonify(institution.to_dict()), 201


@institutions_bp.route('/<int:institution_id>', methods=['GET'])
@api_login_required
def get_institution(institution_id):
    institution = _get_institution(institution_id)
    if not can_access_institution(current_user, institution.id):
        return json_error('Forbidden', 403)
    return jsonify(institution.to_dict(with_counts=True))


@institutions_bp.route('/<int:institution_id>', methods=['PUT'])
@api_role_required(Role.ADMIN)
def update_institution(institution_id):
    institution = _get_institution(institution_id)
    InstitutionService.update_institution(current_user, institution, _payload(), request=request)
    return jsonify(institution.to_dict())


@institutions_bp.route('/<int:institution_id>', methods=['DELETE'])
@api_role_required(Role.ADMIN)
def delete_institution(institution_id):
    institution = _get_institution(institution_id)
    InstitutionService.delete_institution(current_user, institution, request=request)
    return jsonify({'message': 'Institution deleted successfully'})


@institutions_bp.route('/<int:institution_id>/status', methods=['POST'])
@api_role_required(Role.ADMIN)
def set_institution_status(institution_id):
    institution = _get_institution(institution_id)
    status = (request.get_json(silent=True) or {}).get('status')
    InstitutionService.set_status(current_user, institution, status, request=request)
    return jsonify(institution.to_dict())


@institutions_bp.route('/<int:institution_id>/users', methods=['GET'])
@api_login_required
def list_members(institution_id):
    institution = _get_institution(institution_id)
    if not is_institution_admin(current_user, institution.id):
        return json_error('Forbidden', 403)
    members = InstitutionUser.query.filter_by(institution_id=institution.id).order_by(InstitutionUser.id).all()
    return jsonify({'users': [m.to_dict() for m in members]})


@institutions_bp.route('/<int:institution_id>/users', methods=['POST'])
@api_login_required
def add_member(institution_id):
    institution = _get_institution(institution_id)
    if not is_institution_admin(current_user, institution.id):
        return json_error('Forbidden', 403)
    body = request.get_json(silent=True) or {}
    membership = InstitutionService.add_member(
        current_user, institution,
        member_user_id=body.get('userId'),
        email=body.get('email'),
        role=body.get('role') or MemberRole.MEMBER,
        request=request,
    )
    return jsonify(membership.to_dict()), 201


@institutions_bp.route('/<int:institution_id>/users/<int:user_id>', methods=['DELETE'])
@api_login_required
def remove_member(institution_id, user_id):
    institution = _get_institution(institution_id)
    if not is_institution_admin(current_user, institution.id):
        return json_error('Forbidden', 403)
    InstitutionService.remove_member(current_user, institution, user_id, request=request)
    return jsonify({'message': 'User removed from institution'})
