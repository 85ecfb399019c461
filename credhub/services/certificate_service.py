import io
import logging
import uuid
from datetime import datetime

from flask import current_app, render_template
from sqlalchemy import or_
from xhtml2pdf import pisa

from credhub.models import (
    db, Certificate, CertificateStatus, Institution, InstitutionUser, Role,
    LogAction, LogCategory, LogStatus,
)
from credhub.services.activity_logger import log_activity, log_admin_action, log_blockchain_operation
from credhub.services.ledger import LedgerClient, LedgerError
from credhub.services.media_storage import MediaStorage, MediaStorageError
from credhub.services.permissions import is_admin, is_institution_admin, can_access_institution
from credhub.services.uploads import validate_upload
from credhub.services.verification.hash_validator import HashValidator

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('title', 'description', 'type', 'recipient_name', 'recipient_email',
                    'issue_date', 'expiry_date', 'status', 'institution_id')


class CertificatePermissionError(PermissionError):
    pass


def parse_date(value, field):
    if value in (None, ''):
        return None
    if hasattr(value, 'year'):
        return value
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date for {field}: {value}")


class CertificateService:
    @staticmethod
    def issue_certificate(user, data, file, store_on_blockchain=False, request=None):
        """
        Issue a certificate from an uploaded file.

        `data` holds institution_id, title, recipient_name, recipient_email,
        issue_date and optionally description, type, expiry_date, metadata.
        """
        if user is None or user.role not in (Role.ADMIN, Role.INSTITUTION):
            raise CertificatePermissionError("Not authorized")

        institution_id = data.get('institution_id')
        institution_id = int(institution_id) if institution_id not in (None, '') else None
        if institution_id is not None and not is_institution_admin(user, institution_id):
            raise CertificatePermissionError("Not authorized to create certificates for this institution")

        try:
            required = ('title', 'recipient_name', 'recipient_email', 'issue_date')
            if institution_id is None or any(not data.get(f) for f in required):
                raise ValueError("Missing required fields")

            institution = db.session.get(Institution, institution_id)
            if institution is None:
                raise ValueError("Institution not found")

            issue_date = parse_date(data.get('issue_date'), 'issue_date')
            expiry_date = parse_date(data.get('expiry_date'), 'expiry_date')
            if expiry_date and expiry_date < issue_date:
                raise ValueError("Expiry date must be after the issue date")

            validate_upload(file)
            file_hash = HashValidator.compute_stream_hash(file.stream)

            certificate = Certificate(
                title=data['title'].strip(),
                description=data.get('description') or '',
                type=data.get('type') or None,
                recipient_name=data['recipient_name'].strip(),
                recipient_email=data['recipient_email'].strip().lower(),
                issue_date=issue_date,
                expiry_date=expiry_date,
                status=CertificateStatus.ACTIVE,
                verification_id=str(uuid.uuid4()),
                file_hash=file_hash,
                file_name=file.filename,
                meta=data.get('metadata') or None,
                institution_id=institution.id,
                issued_by_id=user.id,
            )

            upload = MediaStorage.upload(file, folder='certificates', public_id=certificate.verification_id,
                                         owner_id=user.id)
            certificate.file_url = upload['secure_url']
            db.session.add(certificate)
            db.session.flush()
        except (ValueError, MediaStorageError) as e:
            db.session.rollback()
            logger.error(f"Error creating certificate: {e}")
            log_activity(
                action=LogAction.CREATE,
                category=LogCategory.CERTIFICATE,
                status=LogStatus.FAILURE,
                details=f"Failed to create certificate: {e}",
                user_id=user.id,
                institution_id=institution_id,
                metadata={'error': str(e)},
                request=request,
            )
            raise

        ledger_error = None
        if store_on_blockchain:
            try:
                tx_id = LedgerClient.anchor({
                    'certificateId': certificate.id,
                    'verificationId': certificate.verification_id,
                    'title': certificate.title,
                    'recipientName': certificate.recipient_name,
                    'recipientEmail': certificate.recipient_email,
                    'issuedDate': certificate.issue_date.isoformat(),
                    'issuerName': institution.name,
                    'issuerId': institution.id,
                    'imageHash': file_hash,
                }, file_hash)
                certificate.blockchain_tx_id = tx_id
                certificate.blockchain_hash = file_hash
                certificate.blockchain_network = current_app.config.get('LEDGER_NETWORK', 'IOTA')
                certificate.blockchain_verified = True
            except LedgerError as e:
                # Issue without anchoring rather than failing
                logger.error(f"Error storing on ledger, continuing without it: {e}")
                ledger_error = str(e)

        db.session.commit()

        log_activity(
            action=LogAction.CREATE,
            category=LogCategory.CERTIFICATE,
            status=LogStatus.SUCCESS,
            details=f'Created certificate "{certificate.title}" for {certificate.recipient_name}',
            user_id=user.id,
            institution_id=institution.id,
            certificate_id=certificate.id,
            metadata={
                'issuedDate': certificate.issue_date.isoformat(),
                'blockchainStored': certificate.blockchain_tx_id is not None,
            },
            request=request,
        )
        if store_on_blockchain:
            log_blockchain_operation(
                action='UPLOAD',
                certificate_id=certificate.id,
                institution_id=institution.id,
                user_id=user.id,
                success=ledger_error is None,
                details=ledger_error or f"Anchored as {certificate.blockchain_tx_id}",
                request=request,
            )
        return certificate

    @staticmethod
    def get_certificate(user, certificate_id):
        certificate = db.session.get(Certificate, certificate_id)
        if certificate is None:
            return None
        if not CertificateService.can_view(user, certificate):
            raise CertificatePermissionError("Not authorized to view this certificate")
        return certificate

    @staticmethod
    def can_view(user, certificate):
        if is_admin(user):
            return True
        if user.role == Role.INSTITUTION and can_access_institution(user, certificate.institution_id):
            return True
        return certificate.recipient_email == (user.email or '').lower()

    @staticmethod
    def update_certificate(user, certificate_id, fields, request=None):
        if not is_admin(user):
            raise CertificatePermissionError("Forbidden")

        certificate = db.session.get(Certificate, certificate_id)
        if certificate is None:
            return None

        changes = {}
        for name in UPDATABLE_FIELDS:
            if name not in fields:
                continue
            value = fields[name]
            if name in ('issue_date', 'expiry_date'):
                value = parse_date(value, name)
                if name == 'issue_date' and value is None:
                    continue
            elif name == 'status':
                if value not in CertificateStatus.ALL:
                    raise ValueError(f"Invalid status: {value}")
            elif name == 'institution_id':
                value = int(value)
                if db.session.get(Institution, value) is None:
                    raise ValueError("Institution not found")
            elif name in ('title', 'recipient_name', 'recipient_email') and not value:
                raise ValueError(f"{name} cannot be empty")
            setattr(certificate, name, value)
            changes[name] = value.isoformat() if hasattr(value, 'isoformat') else value

        db.session.commit()
        log_admin_action(
            action=LogAction.UPDATE,
            category=LogCategory.CERTIFICATE,
            user_id=user.id,
            details=f'Updated certificate "{certificate.title}"',
            metadata={'changes': changes},
            institution_id=certificate.institution_id,
            certificate_id=certificate.id,
            request=request,
        )
        return certificate

    @staticmethod
    def revoke_certificate(user, certificate_id, reason=None, request=None):
        certificate = db.session.get(Certificate, certificate_id)
        if certificate is None:
            return None
        if not is_institution_admin(user, certificate.institution_id):
            raise CertificatePermissionError("Not authorized to revoke this certificate")

        certificate.status = CertificateStatus.REVOKED
        db.session.commit()
        log_activity(
            action=LogAction.UPDATE,
            category=LogCategory.CERTIFICATE,
            status=LogStatus.WARNING,
            details=f'Revoked certificate "{certificate.title}"' + (f": {reason}" if reason else ''),
            user_id=user.id,
            institution_id=certificate.institution_id,
            certificate_id=certificate.id,
            metadata={'reason': reason},
            request=request,
        )
        return certificate

    @staticmethod
    def delete_certificate(user, certificate_id, request=None):
        if not is_admin(user):
            raise CertificatePermissionError("Forbidden")
        certificate = db.session.get(Certificate, certificate_id)
        if certificate is None:
            return False

        title = certificate.title
        institution_id = certificate.institution_id
        verification_id = certificate.verification_id
        db.session.delete(certificate)
        db.session.commit()
        log_admin_action(
            action=LogAction.DELETE,
            category=LogCategory.CERTIFICATE,
            user_id=user.id,
            details=f'Deleted certificate "{title}"',
            metadata={'certificateId': certificate_id, 'verificationId': verification_id},
            institution_id=institution_id,
            request=request,
        )
        return True

    @staticmethod
    def list_certificates(user, institution_id=None, status=None, search=None, page=1, limit=20):
        query = Certificate.query

        if is_admin(user):
            pass
        elif user.role == Role.INSTITUTION:
            institution_ids = [m.institution_id for m in InstitutionUser.query.filter_by(user_id=user.id)]
            query = query.filter(Certificate.institution_id.in_(institution_ids))
        else:
            query = query.filter(Certificate.recipient_email == (user.email or '').lower())

        if institution_id:
            query = query.filter(Certificate.institution_id == institution_id)
        if status:
            query = query.filter(Certificate.status == status)
        if search:
            like = f"%{search}%"
            query = query.filter(or_(
                Certificate.title.ilike(like),
                Certificate.recipient_name.ilike(like),
                Certificate.recipient_email.ilike(like),
            ))

        total = query.count()
        certificates = (query.order_by(Certificate.issue_date.desc(), Certificate.id.desc())
                        .offset((page - 1) * limit).limit(limit).all())
        return {
            'certificates': certificates,
            'pagination': {
                'total': total,
                'page': page,
                'limit': limit,
                'pages': -(-total // limit) if limit else 0,
            },
        }

    @staticmethod
    def render_certificate_pdf(certificate):
        verify_url = "{}/{}/verify/{}".format(
            current_app.config['APP_PUBLIC_URL'].rstrip('/'),
            current_app.config['DEFAULT_LOCALE'],
            certificate.verification_id,
        )
        html = render_template('pdf/certificate.html',
                               certificate=certificate,
                               verify_url=verify_url,
                               generation_date=datetime.utcnow().strftime('%Y-%m-%d'))

        pdf_buffer = io.BytesIO()
        pisa_status = pisa.CreatePDF(html, dest=pdf_buffer)
        if pisa_status.err:
            raise RuntimeError(f"Error creating PDF: {pisa_status.err}")
        return pdf_buffer.getvalue()
