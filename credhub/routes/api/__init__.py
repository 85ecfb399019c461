import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from credhub.models import db
from credhub.services.media_storage import MediaStorageError

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


def json_error(message, status):
    return jsonify({'error': message}), status


def pagination_args(default_limit=20, max_limit=100):
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    return page, min(max(limit, 1), max_limit)


@api_bp.errorhandler(HTTPException)
def handle_http_error(e):
    return json_error(e.description or e.name, e.code)


@api_bp.errorhandler(ValueError)
def handle_value_error(e):
    db.session.rollback()
    return json_error(str(e), 400)


@api_bp.errorhandler(PermissionError)
def handle_permission_error(e):
    return json_error(str(e) or 'Forbidden', 403)


@api_bp.errorhandler(LookupError)
def handle_lookup_error(e):
    return json_error(str(e) or 'Not found', 404)


@api_bp.errorhandler(MediaStorageError)
def handle_media_error(e):
    logger.error(f"Media storage failure: {e}")
    return json_error('Failed to store file', 500)


from .auth_api import auth_api_bp  # noqa: E402
from .certificates_api import certificates_bp  # noqa: E402
from .verify_api import verify_bp  # noqa: E402
from .institutions_api import institutions_bp  # noqa: E402
from .user_api import user_bp  # noqa: E402
from .admin_api import admin_bp  # noqa: E402
from .support_api import support_bp  # noqa: E402
from .file_api import file_bp  # noqa: E402

for _bp in (auth_api_bp, certificates_bp, verify_bp, institutions_bp,
            user_bp, admin_bp, support_bp, file_bp):
    api_bp.register_blueprint(_bp)


def register_api(app):
    app.register_blueprint(api_bp)
