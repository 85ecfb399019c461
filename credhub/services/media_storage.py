import logging
import os
import uuid

import requests
from flask import current_app
from werkzeug.utils import secure_filename

from credhub.models import db, StoredFile
from credhub.services.uploads import content_type_for

logger = logging.getLogger(__name__)

CLOUDINARY_UPLOAD_URL = 'https://api.cloudinary.com/v1_1/{cloud}/auto/upload'


class MediaStorageError(Exception):
    pass


class MediaStorage:
    """
    Uploads files to the configured media backend and returns a
    Cloudinary-shaped result dict, whatever the backend.
    """

    @staticmethod
    def upload(file, folder='general', public_id=None, owner_id=None):
        data = file.read()
        file.seek(0)
        file_name = secure_filename(file.filename or '') or (public_id or uuid.uuid4().hex)
        return MediaStorage.upload_bytes(data, file_name, content_type_for(file_name), folder, public_id, owner_id)

    @staticmethod
    def upload_bytes(data, file_name, content_type='application/octet-stream', folder='general', public_id=None,
                     owner_id=None):
        backend = current_app.config.get('MEDIA_BACKEND', 'database')
        if backend == 'cloudinary':
            return MediaStorage._upload_cloudinary(data, file_name, content_type, folder, public_id)
        if backend == 'database':
            return MediaStorage._upload_database(data, file_name, content_type, folder, owner_id)
        raise MediaStorageError(f"Unknown media backend: {backend}")

    @staticmethod
    def _upload_database(data, file_name, content_type, folder, owner_id=None):
        stored = StoredFile(
            name=file_name,
            content_type=content_type,
            size=len(data),
            folder=folder,
            data=data,
            uploaded_by_id=owner_id,
        )
        db.session.add(stored)
        # Flush only, the caller owns the transaction
        db.session.flush()

        resource_type, _, fmt = content_type.partition('/')
        return {
            'secure_url': f'/api/file/{stored.id}',
            'public_id': str(stored.id),
            'folder': folder,
            'resource_type': resource_type or 'raw',
            'format': fmt or os.path.splitext(file_name)[1].lstrip('.'),
            'content_type': content_type,
            'bytes': stored.size,
            'original_filename': file_name,
        }

    @staticmethod
    def _upload_cloudinary(data, file_name, content_type, folder, public_id):
        cloud = current_app.config.get('CLOUDINARY_CLOUD_NAME')
        preset = current_app.config.get('CLOUDINARY_UPLOAD_PRESET')
        if not cloud or not preset:
            raise MediaStorageError("Cloudinary is not configured")

        form = {'upload_preset': preset, 'folder': folder}
        if public_id:
            form['public_id'] = public_id

        try:
            resp = requests.post(
                CLOUDINARY_UPLOAD_URL.format(cloud=cloud),
                data=form,
                files={'file': (file_name, data, content_type)},
                timeout=30,
            )
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Media upload of {file_name} failed: {e}")
            raise MediaStorageError(f"Failed to store file: {e}") from e

        return {
            'secure_url': body['secure_url'],
            'public_id': body.get('public_id'),
            'folder': folder,
            'resource_type': body.get('resource_type'),
            'format': body.get('format'),
            'content_type': content_type,
            'bytes': body.get('bytes', len(data)),
            'original_filename': body.get('original_filename', file_name),
        }

    @staticmethod
    def get_stored_file(file_id):
        return db.session.get(StoredFile, file_id)
