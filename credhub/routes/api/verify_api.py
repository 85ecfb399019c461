import io

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user

from credhub import csrf
from credhub.models import LogAction, LogCategory
from credhub.routes.api import json_error
from credhub.services.activity_logger import log_activity
from credhub.services.certificate_service import CertificateService
from credhub.services.media_storage import MediaStorage
from credhub.services.verification import VerificationService, serialize_result

verify_bp = Blueprint('verify', __name__, url_prefix='/verify')

STORED_FILE_PREFIX = '/api/file/'


def viewer_may_use_primary_key(identifier):
    """Primary-key lookups are for signed-in users who could see the certificate anyway."""
    if not current_user.is_authenticated:
        return False
    certificate = VerificationService.resolve_certificate(identifier)
    return certificate is not None and CertificateService.can_view(current_user, certificate)


@verify_bp.route('/certificate/<identifier>', methods=['GET'])
def verify_certificate(identifier):
    result = VerificationService.verify_by_id(identifier, request=request,
                                              allow_primary_key=viewer_may_use_primary_key(identifier))
    if result['certificate'] is None:
        return jsonify(serialize_result(result)), 404
    return jsonify(serialize_result(result))


@verify_bp.route('/certificate/upload', methods=['POST'])
@csrf.exempt
def verify_upload():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return json_error('No file provided', 400)
    result = VerificationService.verify_by_file(upload, request=request)
    return jsonify(serialize_result(result))


@verify_bp.route('/certificate/<identifier>/download', methods=['GET'])
def download_certificate(identifier):
    certificate = VerificationService.resolve_certificate(
        identifier, allow_primary_key=viewer_may_use_primary_key(identifier))
    if certificate is None:
        return json_error('Certificate not found', 404)

    stored = None
    if certificate.file_url and certificate.file_url.startswith(STORED_FILE_PREFIX):
        file_id = certificate.file_url[len(STORED_FILE_PREFIX):]
        if file_id.isdigit():
            stored = MediaStorage.get_stored_file(int(file_id))

    log_activity(
        action=LogAction.DOWNLOAD,
        category=LogCategory.CERTIFICATE,
        details=f'Downloaded certificate "{certificate.title}"',
        certificate_id=certificate.id,
        institution_id=certificate.institution_id,
        request=request,
    )

    if stored is not None and request.args.get('format') != 'pdf':
        return send_file(io.BytesIO(stored.data), mimetype=stored.content_type,
                         as_attachment=True, download_name=certificate.file_name or stored.name)

    pdf = CertificateService.render_certificate_pdf(certificate)
    return send_file(io.BytesIO(pdf), mimetype='application/pdf', as_attachment=True,
                     download_name=f'certificate-{certificate.verification_id}.pdf')
