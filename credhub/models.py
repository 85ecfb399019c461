from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

# Initialize SQLAlchemy
db = SQLAlchemy()


class Role:
    ADMIN = 'ADMIN'
    INSTITUTION = 'INSTITUTION'
    USER = 'USER'
    ALL = (ADMIN, INSTITUTION, USER)


class InstitutionType:
    ALL = ('UNIVERSITY', 'COLLEGE', 'SCHOOL', 'TRAINING_CENTER', 'CORPORATE', 'OTHER')


class InstitutionStatus:
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    SUSPENDED = 'SUSPENDED'
    ALL = (PENDING, APPROVED, REJECTED, SUSPENDED)


class MemberRole:
    ADMIN = 'ADMIN'
    STAFF = 'STAFF'
    MEMBER = 'MEMBER'
    ALL = (ADMIN, STAFF, MEMBER)


class CertificateStatus:
    ACTIVE = 'ACTIVE'
    REVOKED = 'REVOKED'
    EXPIRED = 'EXPIRED'
    PENDING_VERIFICATION = 'PENDING_VERIFICATION'
    ALL = (ACTIVE, REVOKED, EXPIRED, PENDING_VERIFICATION)


class LogAction:
    CREATE = 'CREATE'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'
    LOGIN = 'LOGIN'
    LOGOUT = 'LOGOUT'
    VERIFY = 'VERIFY'
    BLOCKCHAIN_VERIFY = 'BLOCKCHAIN_VERIFY'
    BLOCKCHAIN_UPLOAD = 'BLOCKCHAIN_UPLOAD'
    ADMIN_ACTION = 'ADMIN_ACTION'
    DOWNLOAD = 'DOWNLOAD'
    ALL = (CREATE, UPDATE, DELETE, LOGIN, LOGOUT, VERIFY, BLOCKCHAIN_VERIFY,
           BLOCKCHAIN_UPLOAD, ADMIN_ACTION, DOWNLOAD)


class LogCategory:
    AUTH = 'AUTH'
    CERTIFICATE = 'CERTIFICATE'
    INSTITUTION = 'INSTITUTION'
    USER = 'USER'
    VERIFICATION = 'VERIFICATION'
    BLOCKCHAIN = 'BLOCKCHAIN'
    ADMIN = 'ADMIN'
    SUPPORT = 'SUPPORT'
    SYSTEM = 'SYSTEM'
    ALL = (AUTH, CERTIFICATE, INSTITUTION, USER, VERIFICATION, BLOCKCHAIN, ADMIN, SUPPORT, SYSTEM)


class LogStatus:
    SUCCESS = 'SUCCESS'
    FAILURE = 'FAILURE'
    WARNING = 'WARNING'
    INFO = 'INFO'
    ALL = (SUCCESS, FAILURE, WARNING, INFO)


class TicketStatus:
    OPEN = 'OPEN'
    IN_PROGRESS = 'IN_PROGRESS'
    WAITING_ON_CLIENT = 'WAITING_ON_CLIENT'
    RESOLVED = 'RESOLVED'
    CLOSED = 'CLOSED'
    ALL = (OPEN, IN_PROGRESS, WAITING_ON_CLIENT, RESOLVED, CLOSED)


class TicketPriority:
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    URGENT = 'URGENT'
    ALL = (LOW, MEDIUM, HIGH, URGENT)
    # Sort weight, higher is more pressing
    RANK = {LOW: 0, MEDIUM: 1, HIGH: 2, URGENT: 3}


class TicketCategory:
    ALL = ('GENERAL', 'TECHNICAL', 'CERTIFICATE', 'ACCOUNT', 'BILLING', 'OTHER')


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=Role.USER)  # 'ADMIN', 'INSTITUTION', 'USER'
    locale = db.Column(db.String(5), nullable=False, default='en')

    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = db.relationship('InstitutionUser', back_populates='user', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email}>'

    def is_admin(self):
        return self.role == Role.ADMIN

    def institution_ids(self):
        return [m.institution_id for m in self.memberships]

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'locale': self.locale,
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Institution(db.Model):
    __tablename__ = 'institutions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(30), nullable=False, default='UNIVERSITY')
    status = db.Column(db.String(20), nullable=False, default=InstitutionStatus.PENDING, index=True)
    is_approved = db.Column(db.Boolean, default=False)

    website = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    logo_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = db.relationship('InstitutionUser', back_populates='institution', lazy=True, cascade='all, delete-orphan')
    certificates = db.relationship('Certificate', back_populates='institution', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Institution {self.name}>'

    def to_dict(self, with_counts=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'status': self.status,
            'isApproved': self.is_approved,
            'website': self.website,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'logoUrl': self.logo_url,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if with_counts:
            data['userCount'] = len(self.members)
            data['certificateCount'] = len(self.certificates)
        return data


class InstitutionUser(db.Model):
    __tablename__ = 'institution_users'
    __table_args__ = (db.UniqueConstraint('user_id', 'institution_id', name='uq_institution_user'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey('institutions.id', ondelete='CASCADE'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=MemberRole.MEMBER)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='memberships')
    institution = db.relationship('Institution', back_populates='members')

    def to_dict(self):
        return {
            'id': self.id,
            'role': self.role,
            'user': self.user.to_dict() if self.user else None,
            'institutionId': self.institution_id,
        }


class Certificate(db.Model):
    __tablename__ = 'certificates'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(50), nullable=True)

    recipient_name = db.Column(db.String(200), nullable=False)
    recipient_email = db.Column(db.String(120), nullable=False, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), nullable=False, default=CertificateStatus.ACTIVE, index=True)

    # Public lookup key, never the primary key
    verification_id = db.Column(db.String(64), unique=True, nullable=False, index=True)

    file_url = db.Column(db.String(255), nullable=True)
    file_name = db.Column(db.String(255), nullable=True)
    file_hash = db.Column(db.String(64), nullable=True, index=True)

    blockchain_tx_id = db.Column(db.String(128), nullable=True)
    blockchain_hash = db.Column(db.String(64), nullable=True)
    blockchain_network = db.Column(db.String(30), nullable=True)
    blockchain_verified = db.Column(db.Boolean, default=False)

    meta = db.Column('metadata', db.JSON, nullable=True)

    institution_id = db.Column(db.Integer, db.ForeignKey('institutions.id', ondelete='CASCADE'), nullable=False, index=True)
    issued_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    institution = db.relationship('Institution', back_populates='certificates')
    issued_by = db.relationship('User', foreign_keys=[issued_by_id])

    def __repr__(self):
        return f'<Certificate {self.id} - {self.title}>'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'recipientName': self.recipient_name,
            'recipientEmail': self.recipient_email,
            'issueDate': self.issue_date.isoformat() if self.issue_date else None,
            'expiryDate': self.expiry_date.isoformat() if self.expiry_date else None,
            'status': self.status,
            'verificationId': self.verification_id,
            'fileUrl': self.file_url,
            'fileHash': self.file_hash,
            'blockchainTxId': self.blockchain_tx_id,
            'blockchainHash': self.blockchain_hash,
            'blockchainNetwork': self.blockchain_network,
            'blockchainVerified': self.blockchain_verified,
            'metadata': self.meta or {},
            'issuer': self.institution.name if self.institution else None,
            'institution': {'id': self.institution.id, 'name': self.institution.name} if self.institution else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class ActivityLog(db.Model):
    """Append-only audit record. Rows are never updated after insert."""
    __tablename__ = 'activity_logs'

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(30), nullable=False, index=True)
    category = db.Column(db.String(30), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=LogStatus.SUCCESS, index=True)
    details = db.Column(db.Text, nullable=True)
    meta = db.Column('metadata', db.JSON, nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    institution_id = db.Column(db.Integer, db.ForeignKey('institutions.id', ondelete='SET NULL'), nullable=True)
    certificate_id = db.Column(db.Integer, db.ForeignKey('certificates.id', ondelete='SET NULL'), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship('User')
    institution = db.relationship('Institution')
    certificate = db.relationship('Certificate')

    def __repr__(self):
        return f'<ActivityLog {self.action}/{self.category} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'category': self.category,
            'status': self.status,
            'details': self.details,
            'metadata': self.meta,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'user': {'id': self.user.id, 'name': self.user.name, 'email': self.user.email} if self.user else None,
            'institution': {'id': self.institution.id, 'name': self.institution.name} if self.institution else None,
            'certificate': {
                'id': self.certificate.id,
                'title': self.certificate.title,
                'recipientName': self.certificate.recipient_name,
            } if self.certificate else None,
        }


class SupportTicket(db.Model):
    __tablename__ = 'support_tickets'

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(40), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(30), nullable=False, default=TicketStatus.OPEN, index=True)
    priority = db.Column(db.String(20), nullable=False, default=TicketPriority.MEDIUM)
    category = db.Column(db.String(30), nullable=False, default='GENERAL')
    related_to = db.Column(db.String(255), nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    institution_id = db.Column(db.Integer, db.ForeignKey('institutions.id', ondelete='SET NULL'), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = db.relationship('User', foreign_keys=[created_by_id])
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    institution = db.relationship('Institution')
    messages = db.relationship('SupportMessage', back_populates='ticket', lazy=True,
                               cascade='all, delete-orphan', order_by='SupportMessage.created_at')
    attachments = db.relationship('SupportAttachment', back_populates='ticket', lazy=True,
                                  cascade='all, delete-orphan')

    def __repr__(self):
        return f'<SupportTicket {self.reference}>'

    def to_dict(self, include_messages=False, include_internal=False):
        data = {
            'id': self.id,
            'reference': self.reference,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'category': self.category,
            'relatedTo': self.related_to,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'user': _user_summary(self.created_by),
            'assignedTo': _user_summary(self.assigned_to),
            'institution': {'id': self.institution.id, 'name': self.institution.name} if self.institution else None,
            'attachments': [a.to_dict() for a in self.attachments if a.message_id is None],
            'counts': {'messages': len(self.messages), 'attachments': len(self.attachments)},
        }
        if include_messages:
            data['messages'] = [m.to_dict() for m in self.messages if include_internal or not m.is_internal]
        return data


class SupportMessage(db.Model):
    __tablename__ = 'support_messages'

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('support_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    sent_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    ticket = db.relationship('SupportTicket', back_populates='messages')
    sent_by = db.relationship('User')
    attachments = db.relationship('SupportAttachment', back_populates='message', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'content': self.content,
            'isInternal': self.is_internal,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'user': _user_summary(self.sent_by),
            'attachments': [a.to_dict() for a in self.attachments],
        }


class SupportAttachment(db.Model):
    __tablename__ = 'support_attachments'

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('support_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    message_id = db.Column(db.Integer, db.ForeignKey('support_messages.id', ondelete='CASCADE'), nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(500), nullable=False)
    public_id = db.Column(db.String(255), nullable=True)
    file_type = db.Column(db.String(100), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    ticket = db.relationship('SupportTicket', back_populates='attachments')
    message = db.relationship('SupportMessage', back_populates='attachments')

    def to_dict(self):
        return {
            'id': self.id,
            'url': self.file_url,
            'publicId': self.public_id,
            'fileName': self.file_name,
            'fileType': self.file_type,
            'fileSize': self.file_size,
        }


class StoredFile(db.Model):
    __tablename__ = 'stored_files'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    content_type = db.Column(db.String(100), nullable=False, default='application/octet-stream')
    size = db.Column(db.Integer, nullable=False)
    folder = db.Column(db.String(100), nullable=False, default='general')
    data = db.Column(db.LargeBinary, nullable=False)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class LedgerTransaction(db.Model):
    __tablename__ = 'ledger_transactions'

    id = db.Column(db.Integer, primary_key=True)
    tx_id = db.Column(db.String(128), unique=True, nullable=False, index=True)
    network = db.Column(db.String(30), nullable=False)
    payload_hash = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


def _user_summary(user):
    if user is None:
        return None
    return {'id': user.id, 'name': user.name, 'email': user.email}
