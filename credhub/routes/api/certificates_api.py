from flask import Blueprint, jsonify, request
from flask_login import current_user

from credhub.models import Role
from credhub.routes.api import json_error, pagination_args
from credhub.routes.decorators import api_login_required, api_role_required
from credhub.services.certificate_service import CertificateService

certificates_bp = Blueprint('certificates', __name__, url_prefix='/certificates')

# camelCase request keys onto service field names
FIELD_MAP = {
    'institutionId': 'institution_id',
    'title': 'title',
    'description': 'description',
    'type': 'type',
    'recipientName': 'recipient_name',
    'recipientEmail': 'recipient_email',
    'issueDate': 'issue_date',
    'expiryDate': 'expiry_date',
    'status': 'status',
}


def _map_fields(source):
    return {FIELD_MAP[key]: value for key, value in source.items() if key in FIELD_MAP}


@certificates_bp.route('', methods=['GET'])
@api_login_required
def list_certificates():
    page, limit = pagination_args()
    result = CertificateService.list_certificates(
        current_user,
        institution_id=request.args.get('institutionId', type=int),
        status=request.args.get('status'),
        search=request.args.get('search'),
        page=page,
        limit=limit,
    )
    return jsonify({
        'certificates': [c.to_dict() for c in result['certificates']],
        'pagination': result['pagination'],
    })


@certificates_bp.route('', methods=['POST'])
@api_role_required(Role.ADMIN, Role.INSTITUTION)
def create_certificate():
    data = _map_fields(request.form)
    store_on_blockchain = (request.form.get('storeOnBlockchain') or '').lower() in ('1', 'true', 'on', 'yes')
    certificate = CertificateService.issue_certificate(
        current_user, data, request.files.get('file'),
        store_on_blockchain=store_on_blockchain, request=request)
    return jsonify(certificate.to_dict()), 201


@certificates_bp.route('/<int:certificate_id>', methods=['GET'])
@api_login_required
def get_certificate(certificate_id):
    certificate = CertificateService.get_certificate(current_user, certificate_id)
    if certificate is None:
        return json_error('Certificate not found', 404)
    return jsonify(certificate.to_dict())


@certificates_bp.route('/<int:certificate_id>', methods=['PUT'])
@api_role_required(Role.ADMIN)
def update_certificate(certificate_id):
    body = request.get_json(silent=True) or {}
    certificate = CertificateService.update_certificate(
        current_user, certificate_id, _map_fields(body), request=request)
    if certificate is None:
        return json_error('Certificate not found', 404)
    return jsonify(certificate.to_dict())


@certificates_bp.route('/<int:certificate_id>', methods=['DELETE'])
@api_role_required(Role.ADMIN)
def delete_certificate(certificate_id):
    if not CertificateService.delete_certificate(current_user, certificate_id, request=request):
        return json_error('Certificate not found', 404)
    return jsonify({'message': 'Certificate deleted successfully'})


@certificates_bp.route('/<int:certificate_id>/revoke', methods=['POST'])
@api_role_required(Role.ADMIN, Role.INSTITUTION)
def revoke_certificate(certificate_id):
    body = request.get_json(silent=True) or {}
    certificate = CertificateService.revoke_certificate(
        current_user, certificate_id, reason=body.get('reason'), request=request)
    if certificate is None:
        return json_error('Certificate not found', 404)
    return jsonify(certificate.to_dict())
