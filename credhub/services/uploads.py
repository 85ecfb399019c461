import os

import filetype

ALLOWED_CERTIFICATE_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg'}
ALLOWED_ATTACHMENT_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'txt', 'csv', 'json', 'docx'}

# Extensions whose contents carry a recognisable signature
SIGNED_MIME_TYPES = {
    'pdf': {'application/pdf'},
    'png': {'image/png'},
    'jpg': {'image/jpeg', 'image/jpg'},
    'jpeg': {'image/jpeg', 'image/jpg'},
}

# Stored and served content types come from the extension, never the client
CONTENT_TYPES = {
    'pdf': 'application/pdf',
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'txt': 'text/plain',
    'csv': 'text/csv',
    'json': 'application/json',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}


def file_extension(filename):
    if not filename or '.' not in filename:
        return ''
    return os.path.splitext(filename)[1].lstrip('.').lower()


def content_type_for(filename):
    return CONTENT_TYPES.get(file_extension(filename), 'application/octet-stream')


def allowed_file(filename, allowed=ALLOWED_CERTIFICATE_EXTENSIONS):
    return file_extension(filename) in allowed


def validate_mime_type(file_stream, extension):
    """
    Check the leading bytes against the claimed extension.
    Extensions without a binary signature (txt, json, ...) always pass.
    """
    expected = SIGNED_MIME_TYPES.get(extension)
    if expected is None:
        return True

    # Read first 2048 bytes for signature checking
    header = file_stream.read(2048)
    file_stream.seek(0)

    kind = filetype.guess(header)
    if kind is None:
        return False
    return kind.mime in expected


def validate_upload(file, allowed=ALLOWED_CERTIFICATE_EXTENSIONS):
    """Raise ValueError unless `file` is a non-empty upload of an allowed, genuine type."""
    if file is None or not file.filename:
        raise ValueError("File is required")
    extension = file_extension(file.filename)
    if extension not in allowed:
        names = ', '.join(sorted(e.upper() for e in allowed))
        raise ValueError(f"Invalid file type. Allowed: {names}")
    if not validate_mime_type(file.stream, extension):
        raise ValueError("Invalid file type detected. Please upload a valid PDF or Image.")
    return extension
