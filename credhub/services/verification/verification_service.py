import logging
from datetime import date
from typing import Any, Dict, List, Optional

from flask import current_app

from credhub.models import db, Certificate, CertificateStatus
from credhub.services.activity_logger import log_certificate_verification, log_blockchain_operation
from credhub.services.ledger import LedgerClient, LedgerError
from credhub.services.uploads import validate_upload

from .text_extractor import TextExtractor
from .qr_extractor import QRExtractor
from .hash_validator import HashValidator

logger = logging.getLogger(__name__)

VERIFY_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'json'}


class VerificationService:
    @staticmethod
    def resolve_certificate(identifier, allow_primary_key=True) -> Optional[Certificate]:
        """
        Digits-only identifiers are primary keys, anything else is a verification id.
        Anonymous callers pass allow_primary_key=False.
        """
        if identifier is None:
            return None
        identifier = str(identifier).strip()
        if not identifier:
            return None
        if identifier.isdigit() and allow_primary_key:
            return db.session.get(Certificate, int(identifier))
        return Certificate.query.filter_by(verification_id=identifier).first()

    @staticmethod
    def verify_by_id(identifier, request=None, method='id', file_matches=None,
                     allow_primary_key=False) -> Dict[str, Any]:
        logger.info(f"Starting verification for: {identifier} ({method})")
        certificate = VerificationService.resolve_certificate(identifier, allow_primary_key=allow_primary_key)

        if certificate is None:
            log_certificate_verification(
                certificate_id=None,
                institution_id=None,
                success=False,
                details=f"Verification failed: no certificate for '{identifier}'",
                metadata={'identifier': str(identifier), 'method': method},
                request=request,
            )
            return VerificationService._result(False, "Certificate not found", method=method)

        valid, reason = VerificationService.check_status(certificate)

        blockchain = None
        if certificate.blockchain_tx_id:
            blockchain = VerificationService.check_ledger(certificate, request=request)
            if valid and not blockchain['verified']:
                valid = False
                reason = "Certificate hash does not match the ledger record."

        log_certificate_verification(
            certificate_id=certificate.id,
            institution_id=certificate.institution_id,
            success=valid,
            details=f"Certificate '{certificate.title}' verification {'succeeded' if valid else 'failed'}: {reason}",
            metadata={'verificationId': certificate.verification_id, 'method': method},
            request=request,
        )
        logger.info(f"Decision for certificate {certificate.id}: valid={valid}")
        return VerificationService._result(valid, reason, certificate, blockchain, method, file_matches)

    @staticmethod
    def check_status(certificate, today=None):
        today = today or date.today()
        if certificate.status == CertificateStatus.REVOKED:
            return False, "Certificate has been revoked."
        if certificate.status == CertificateStatus.PENDING_VERIFICATION:
            return False, "Certificate is pending verification."
        if certificate.status == CertificateStatus.EXPIRED or (
                certificate.expiry_date and certificate.expiry_date < today):
            return False, "Certificate has expired."
        return True, "Certificate is authentic and active."

    @staticmethod
    def check_ledger(certificate, request=None) -> Dict[str, Any]:
        error = None
        try:
            verified = LedgerClient.verify(certificate.blockchain_tx_id, certificate.blockchain_hash)
        except LedgerError as e:
            logger.warning(f"Ledger check failed for certificate {certificate.id}: {e}")
            verified = False
            error = str(e)

        if certificate.blockchain_verified != verified:
            certificate.blockchain_verified = verified
            db.session.commit()

        log_blockchain_operation(
            action='VERIFY',
            certificate_id=certificate.id,
            institution_id=certificate.institution_id,
            success=verified,
            details=error or f"Ledger transaction {certificate.blockchain_tx_id} {'matches' if verified else 'does not match'}",
            metadata={'txId': certificate.blockchain_tx_id, 'network': certificate.blockchain_network},
            request=request,
        )
        return {
            'verified': verified,
            'network': certificate.blockchain_network,
            'transactionId': certificate.blockchain_tx_id,
            'hash': certificate.blockchain_hash,
            'error': error,
        }

    @staticmethod
    def verify_by_file(file, request=None) -> Dict[str, Any]:
        """
        Re-derive the certificate from an uploaded file:
          1. exact file hash match,
          2. verification ids found inside the file (JSON field, PDF text, QR code).
        Raises ValueError for unusable uploads.
        """
        extension = validate_upload(file, VERIFY_EXTENSIONS)
        data = file.read()
        file.seek(0)

        max_size = current_app.config.get('VERIFY_MAX_FILE_SIZE', 10 * 1024 * 1024)
        if len(data) > max_size:
            raise ValueError(f"File size exceeds {max_size // (1024 * 1024)}MB limit")
        if not data:
            raise ValueError("File is empty")

        file_hash = HashValidator.compute_hash(data)
        matched = HashValidator.validate(file_hash)
        if matched is not None:
            return VerificationService.verify_by_id(
                matched.verification_id, request=request, method='file_hash', file_matches=True)

        for candidate in VerificationService.extract_candidates(data, extension):
            certificate = VerificationService.resolve_certificate(candidate, allow_primary_key=False)
            if certificate is not None:
                file_matches = None
                if certificate.file_hash and extension != 'json':
                    file_matches = certificate.file_hash == file_hash
                return VerificationService.verify_by_id(
                    certificate.verification_id, request=request, method=f'file_{extension}',
                    file_matches=file_matches)

        log_certificate_verification(
            certificate_id=None,
            institution_id=None,
            success=False,
            details=f"Verification failed: no certificate matches uploaded file '{file.filename}'",
            metadata={'fileHash': file_hash, 'method': f'file_{extension}'},
            request=request,
        )
        return VerificationService._result(
            False, "No matching certificate found for the uploaded file", method=f'file_{extension}')

    @staticmethod
    def extract_candidates(data: bytes, extension: str) -> List[str]:
        if extension == 'json':
            return TextExtractor.extract_from_json(data)
        if extension == 'pdf':
            return TextExtractor.extract_verification_ids(TextExtractor.extract_from_pdf(data))

        candidates = []
        qr_values = QRExtractor.extract(data)
        for value in QRExtractor.filter_urls(qr_values):
            candidates.extend(TextExtractor.extract_verification_ids(value))
        for value in qr_values:
            candidates.extend(TextExtractor.extract_verification_ids(value) or [value])
        return list(dict.fromkeys(candidates))

    @staticmethod
    def _result(valid, reason, certificate=None, blockchain=None, method='id', file_matches=None):
        return {
            'valid': valid,
            'reason': reason,
            'method': method,
            'fileMatches': file_matches,
            'certificate': certificate,
            'blockchain': blockchain,
        }


def serialize_result(result):
    data = dict(result)
    certificate = data.get('certificate')
    data['certificate'] = certificate.to_dict() if certificate is not None else None
    return data
