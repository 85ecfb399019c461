import hashlib
import logging

from credhub.models import Certificate

logger = logging.getLogger(__name__)


class HashValidator:
    @staticmethod
    def compute_hash(data: bytes) -> str:
        """
        Compute SHA-256 hash of the file contents.
        """
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def compute_stream_hash(stream) -> str:
        stream.seek(0)
        sha256_hash = hashlib.sha256()
        for byte_block in iter(lambda: stream.read(4096), b""):
            sha256_hash.update(byte_block)
        stream.seek(0)
        return sha256_hash.hexdigest()

    @staticmethod
    def validate(file_hash: str):
        """
        Look up the certificate issued with exactly this file.
        Returns the record if found, else None.
        """
        if not file_hash:
            return None
        return Certificate.query.filter(
            (Certificate.file_hash == file_hash) | (Certificate.blockchain_hash == file_hash)
        ).first()
