import io

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user

from credhub.models import db, Certificate, SupportAttachment
from credhub.routes.api import json_error
from credhub.routes.decorators import api_login_required
from credhub.services.certificate_service import CertificateService
from credhub.services.media_storage import MediaStorage
from credhub.services.permissions import is_admin
from credhub.services.support_service import check_ticket_access
from credhub.services.uploads import validate_upload, ALLOWED_ATTACHMENT_EXTENSIONS

file_bp = Blueprint('file', __name__, url_prefix='/file')


def can_read_file(user, stored):
    """
    A stored file is readable through whatever owns it: the support ticket it is
    attached to, the certificate it backs, or else only its uploader.
    """
    if is_admin(user):
        return True
    url = f'/api/file/{stored.id}'

    attachment = SupportAttachment.query.filter_by(file_url=url).first()
    if attachment is not None:
        return check_ticket_access(attachment.ticket, user)

    certificate = Certificate.query.filter_by(file_url=url).first()
    if certificate is not None:
        return CertificateService.can_view(user, certificate)

    return stored.uploaded_by_id is not None and stored.uploaded_by_id == user.id


@file_bp.route('/upload', methods=['POST'])
@api_login_required
def upload_file():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return json_error('No file provided', 400)
    validate_upload(upload, ALLOWED_ATTACHMENT_EXTENSIONS)
    result = MediaStorage.upload(upload, folder=request.form.get('folder') or 'general', owner_id=current_user.id)
    db.session.commit()
    return jsonify(result), 201


@file_bp.route('/<int:file_id>', methods=['GET'])
@api_login_required
def get_file(file_id):
    stored = MediaStorage.get_stored_file(file_id)
    # Unreadable files answer 404 like missing ones
    if stored is None or not can_read_file(current_user, stored):
        return json_error('File not found', 404)

    inline = stored.content_type.startswith('image/')
    resp = send_file(io.BytesIO(stored.data), mimetype=stored.content_type,
                     as_attachment=not inline, download_name=stored.name)
    resp.headers['X-Content-Type-Options'] = 'nosniff'
    return resp
