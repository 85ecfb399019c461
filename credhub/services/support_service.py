import logging
import random
import string
import time

from sqlalchemy import case, or_

from credhub.models import (
    db, SupportTicket, SupportMessage, SupportAttachment, InstitutionUser, User,
    Role, TicketStatus, TicketPriority, TicketCategory,
)
from credhub.services.activity_logger import log_support_activity
from credhub.services.media_storage import MediaStorage, MediaStorageError
from credhub.services.uploads import validate_upload, ALLOWED_ATTACHMENT_EXTENSIONS

logger = logging.getLogger(__name__)

ATTACHMENT_FOLDER = 'support-attachments'
_BASE36 = string.digits + string.ascii_lowercase


class TicketNotFound(LookupError):
    pass


class TicketAccessDenied(PermissionError):
    pass


def _base36(number):
    digits = []
    while True:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
        if number == 0:
            break
    return ''.join(reversed(digits))


def generate_reference_id():
    """TKT-<base36 millisecond timestamp>-<4 random upper-case alphanumerics>"""
    timestamp = _base36(int(time.time() * 1000))
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"TKT-{timestamp}-{suffix}"


def check_ticket_access(ticket, user, require_admin=False):
    if user is None:
        return False
    if user.role == Role.ADMIN:
        return True
    if require_admin:
        return False
    if ticket.created_by_id == user.id:
        return True
    if ticket.institution_id is not None:
        return ticket.institution_id in user.institution_ids()
    return False


def _check_choice(value, allowed, field):
    if value not in allowed:
        raise ValueError(f"Invalid {field}: {value}")
    return value


class SupportService:
    @staticmethod
    def create_ticket(user, title, description, category='GENERAL', priority=TicketPriority.MEDIUM,
                      institution_id=None, related_to=None, attachments=()):
        if not title or not description:
            raise ValueError("Title and description are required")
        _check_choice(category, TicketCategory.ALL, 'category')
        _check_choice(priority, TicketPriority.ALL, 'priority')

        ticket = SupportTicket(
            reference=generate_reference_id(),
            title=title.strip(),
            description=description.strip(),
            category=category,
            priority=priority,
            status=TicketStatus.OPEN,
            created_by_id=user.id,
            institution_id=institution_id,
            related_to=related_to,
        )
        db.session.add(ticket)
        db.session.flush()

        try:
            SupportService._store_attachments(user, ticket, attachments)
        except (ValueError, MediaStorageError):
            db.session.rollback()
            raise
        db.session.commit()

        logger.info(f"Support ticket {ticket.reference} created by user {user.id}")
        log_support_activity('CREATE', ticket.id, user.id, f"Created support ticket: {ticket.title}")
        return ticket

    @staticmethod
    def get_ticket(user, ticket_id, require_admin=False):
        ticket = db.session.get(SupportTicket, ticket_id)
        if ticket is None:
            raise TicketNotFound("Ticket not found")
        if not check_ticket_access(ticket, user, require_admin=require_admin):
            raise TicketAccessDenied("You do not have permission to access this ticket")
        return ticket

    @staticmethod
    def update_ticket(user, ticket_id, status=None, priority=None, category=None, assigned_to_id=None,
                      unassign=False):
        ticket = SupportService.get_ticket(user, ticket_id, require_admin=True)

        changes = {}
        if status is not None:
            ticket.status = changes['status'] = _check_choice(status, TicketStatus.ALL, 'status')
        if priority is not None:
            ticket.priority = changes['priority'] = _check_choice(priority, TicketPriority.ALL, 'priority')
        if category is not None:
            ticket.category = changes['category'] = _check_choice(category, TicketCategory.ALL, 'category')
        if assigned_to_id is not None:
            if db.session.get(User, assigned_to_id) is None:
                raise ValueError("Assignee not found")
            ticket.assigned_to_id = changes['assignedToId'] = assigned_to_id
        elif unassign:
            ticket.assigned_to_id = changes['assignedToId'] = None

        db.session.commit()
        log_support_activity('UPDATE', ticket.id, user.id, f"Updated support ticket: {ticket.title}",
                             metadata={'changes': changes})
        return ticket

    @staticmethod
    def add_message(user, ticket_id, content, is_internal=False, attachments=()):
        ticket = SupportService.get_ticket(user, ticket_id)
        if not content or not content.strip():
            raise ValueError("Message content is required")
        if is_internal and user.role != Role.ADMIN:
            raise TicketAccessDenied("Only administrators can post internal notes")

        message = SupportMessage(
            ticket_id=ticket.id,
            sent_by_id=user.id,
            content=content.strip(),
            is_internal=bool(is_internal),
        )
        db.session.add(message)
        db.session.flush()

        try:
            SupportService._store_attachments(user, ticket, attachments, message=message)
        except (ValueError, MediaStorageError):
            db.session.rollback()
            raise

        # A client reply puts the ticket back in the queue
        if ticket.status == TicketStatus.WAITING_ON_CLIENT and not is_internal:
            ticket.status = TicketStatus.IN_PROGRESS

        db.session.commit()
        log_support_activity('MESSAGE', ticket.id, user.id, f"Added message to support ticket: {ticket.title}")
        return message

    @staticmethod
    def list_tickets(user, status=None, priority=None, category=None, user_id=None, assigned_to_id=None,
                     institution_id=None, search=None, page=1, limit=10):
        query = SupportTicket.query

        if status:
            query = query.filter(SupportTicket.status == status)
        if priority:
            query = query.filter(SupportTicket.priority == priority)
        if category:
            query = query.filter(SupportTicket.category == category)
        if user_id:
            query = query.filter(SupportTicket.created_by_id == user_id)
        if assigned_to_id:
            query = query.filter(SupportTicket.assigned_to_id == assigned_to_id)
        if institution_id:
            query = query.filter(SupportTicket.institution_id == institution_id)
        if search:
            like = f"%{search}%"
            query = query.filter(or_(SupportTicket.title.ilike(like), SupportTicket.description.ilike(like)))

        # Same visibility as check_ticket_access: own tickets plus every member institution
        if user.role != Role.ADMIN:
            query = query.filter(or_(
                SupportTicket.created_by_id == user.id,
                SupportTicket.institution_id.in_(user.institution_ids()),
            ))

        priority_rank = case(TicketPriority.RANK, value=SupportTicket.priority, else_=0)

        total = query.count()
        tickets = (query.order_by(priority_rank.desc(), SupportTicket.created_at.desc(), SupportTicket.id.desc())
                   .offset((page - 1) * limit).limit(limit).all())
        return {
            'tickets': tickets,
            'pagination': {
                'total': total,
                'page': page,
                'limit': limit,
                'pages': -(-total // limit) if limit else 0,
            },
        }

    @staticmethod
    def _store_attachments(user, ticket, attachments, message=None):
        for file in attachments or ():
            if file is None or not file.filename:
                continue
            validate_upload(file, ALLOWED_ATTACHMENT_EXTENSIONS)
            upload = MediaStorage.upload(file, folder=ATTACHMENT_FOLDER, owner_id=user.id)
            db.session.add(SupportAttachment(
                ticket_id=ticket.id,
                message_id=message.id if message is not None else None,
                file_name=upload['original_filename'],
                file_url=upload['secure_url'],
                public_id=upload['public_id'],
                file_type=upload['content_type'],
                file_size=upload['bytes'],
                uploaded_by_id=user.id,
            ))
