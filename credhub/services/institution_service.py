import logging

from sqlalchemy import or_

from credhub.models import (
    db, Institution, InstitutionUser, InstitutionType, InstitutionStatus, MemberRole, User,
    LogAction, LogCategory,
)
from credhub.services.activity_logger import log_admin_action
from credhub.services.permissions import is_admin

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'description', 'type', 'website', 'email', 'phone', 'address', 'logo_url')


def normalize_type(value):
    """Map loose spellings like 'training' or 'university' onto InstitutionType values."""
    if not value:
        return 'UNIVERSITY'
    candidate = str(value).strip().upper().replace(' ', '_')
    if candidate in ('TRAINING', 'TRAININGCENTER'):
        candidate = 'TRAINING_CENTER'
    if candidate in ('COMPANY',):
        candidate = 'CORPORATE'
    return candidate if candidate in InstitutionType.ALL else 'OTHER'


class InstitutionService:
    @staticmethod
    def list_institutions(user, status=None, search=None):
        query = Institution.query
        if not is_admin(user):
            query = query.filter(Institution.id.in_(user.institution_ids() or [-1]))
        if status:
            query = query.filter(Institution.status == status)
        if search:
            like = f"%{search}%"
            query = query.filter(or_(Institution.name.ilike(like), Institution.email.ilike(like)))
        return query.order_by(Institution.name).all()

    @staticmethod
    def create_institution(user, data, request=None):
        if not data.get('name'):
            raise ValueError("Institution name is required")

        institution = Institution(
            name=data['name'].strip(),
            description=data.get('description'),
            type=normalize_type(data.get('type')),
            website=data.get('website'),
            email=data.get('email'),
            phone=data.get('phone'),
            address=data.get('address'),
            logo_url=data.get('logo_url') or data.get('logoUrl'),
        )
        InstitutionService._apply_status(institution, data.get('status') or InstitutionStatus.PENDING)
        db.session.add(institution)
        db.session.commit()

        log_admin_action(
            action=LogAction.CREATE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Created institution {institution.name}",
            institution_id=institution.id,
            request=request,
        )
        return institution

    @staticmethod
    def update_institution(user, institution, data, request=None):
        changes = {}
        for name in EDITABLE_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if name == 'type':
                value = normalize_type(value)
            elif name == 'name' and not value:
                raise ValueError("Institution name is required")
            setattr(institution, name, value)
            changes[name] = value
        if 'status' in data:
            InstitutionService._apply_status(institution, data['status'])
            changes['status'] = institution.status

        db.session.commit()
        log_admin_action(
            action=LogAction.UPDATE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Updated institution {institution.name}",
            metadata={'changes': changes},
            institution_id=institution.id,
            request=request,
        )
        return institution

    @staticmethod
    def set_status(user, institution, status, request=None):
        previous = institution.status
        InstitutionService._apply_status(institution, status)
        db.session.commit()
        log_admin_action(
            action=LogAction.UPDATE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Institution {institution.name} status changed from {previous} to {institution.status}",
            metadata={'previousStatus': previous, 'status': institution.status},
            institution_id=institution.id,
            request=request,
        )
        return institution

    @staticmethod
    def delete_institution(user, institution, request=None):
        name = institution.name
        institution_id = institution.id
        db.session.delete(institution)
        db.session.commit()
        log_admin_action(
            action=LogAction.DELETE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Deleted institution {name}",
            metadata={'institutionId': institution_id},
            request=request,
        )

    @staticmethod
    def add_member(user, institution, member_user_id=None, email=None, role=MemberRole.MEMBER, request=None):
        if role not in MemberRole.ALL:
            raise ValueError(f"Invalid member role: {role}")

        member = None
        if member_user_id:
            member = db.session.get(User, int(member_user_id))
        elif email:
            member = User.query.filter_by(email=email.strip().lower()).first()
        if member is None:
            raise LookupError("User not found")

        existing = InstitutionUser.query.filter_by(user_id=member.id, institution_id=institution.id).first()
        if existing:
            raise ValueError("User is already a member of this institution")

        membership = InstitutionUser(user_id=member.id, institution_id=institution.id, role=role)
        db.session.add(membership)
        db.session.commit()

        log_admin_action(
            action=LogAction.UPDATE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Added {member.email} to {institution.name} as {role}",
            metadata={'memberId': member.id, 'role': role},
            institution_id=institution.id,
            request=request,
        )
        return membership

    @staticmethod
    def remove_member(user, institution, member_user_id, request=None):
        membership = InstitutionUser.query.filter_by(user_id=member_user_id, institution_id=institution.id).first()
        if membership is None:
            raise LookupError("Membership not found")
        db.session.delete(membership)
        db.session.commit()
        log_admin_action(
            action=LogAction.UPDATE,
            category=LogCategory.INSTITUTION,
            user_id=user.id,
            details=f"Removed user {member_user_id} from {institution.name}",
            metadata={'memberId': member_user_id},
            institution_id=institution.id,
            request=request,
        )

    @staticmethod
    def _apply_status(institution, status):
        if status not in InstitutionStatus.ALL:
            raise ValueError(f"Invalid status: {status}")
        institution.status = status
        institution.is_approved = status == InstitutionStatus.APPROVED
