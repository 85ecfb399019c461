from credhub.models import InstitutionUser, MemberRole, Role


def is_admin(user):
    return user is not None and getattr(user, 'role', None) == Role.ADMIN


def membership(user, institution_id):
    if user is None or institution_id is None:
        return None
    return InstitutionUser.query.filter_by(user_id=user.id, institution_id=institution_id).first()


def can_access_institution(user, institution_id):
    """Admins see every institution, everyone else only the ones they belong to."""
    if is_admin(user):
        return True
    return membership(user, institution_id) is not None


def is_institution_admin(user, institution_id):
    if is_admin(user):
        return True
    member = membership(user, institution_id)
    return member is not None and member.role == MemberRole.ADMIN


def can_manage_certificates(user):
    return user is not None and user.role in (Role.ADMIN, Role.INSTITUTION)
