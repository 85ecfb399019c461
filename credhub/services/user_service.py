from flask import current_app
from werkzeug.security import generate_password_hash, check_password_hash

from credhub.models import db, User, Role


class UserService:
    @staticmethod
    def get_user_by_email(email):
        if not email:
            return None
        return User.query.filter_by(email=email.strip().lower()).first()

    @staticmethod
    def get_user_by_id(user_id):
        return db.session.get(User, user_id)

    @staticmethod
    def create_user(email, password, role=Role.USER, **kwargs):
        if not email or not password:
            raise ValueError("Email and password are required")
        if role not in Role.ALL:
            raise ValueError(f"Invalid role: {role}")
        if len(password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if UserService.get_user_by_email(email):
            raise ValueError("Email already exists")

        user = User(
            email=email.strip().lower(),
            password_hash=generate_password_hash(password),
            role=role,
            **kwargs
        )
        db.session.add(user)
        db.session.commit()
        return user

    @staticmethod
    def verify_password(user, password):
        return check_password_hash(user.password_hash, password or '')

    @staticmethod
    def is_default_admin(user):
        return user.role == Role.ADMIN and user.email == current_app.config['DEFAULT_ADMIN_EMAIL']

    @staticmethod
    def update_user(user, name=None, email=None, role=None, locale=None, password=None, is_active=None):
        if UserService.is_default_admin(user):
            if role is not None and role != Role.ADMIN:
                raise ValueError("Cannot change role of default admin")
            if is_active is False:
                raise ValueError("Cannot deactivate default admin")

        if email is not None:
            email = email.strip().lower()
            existing = User.query.filter(User.email == email, User.id != user.id).first()
            if existing:
                raise ValueError("Email already in use")
            user.email = email

        if role is not None:
            if role not in Role.ALL:
                raise ValueError(f"Invalid role: {role}")
            user.role = role
        if name is not None:
            user.name = name
        if locale is not None:
            if locale not in current_app.config['LOCALES']:
                raise ValueError(f"Unsupported locale: {locale}")
            user.locale = locale
        if is_active is not None:
            user.is_active = bool(is_active)
        if password:
            if len(password) < 8:
                raise ValueError("Password must be at least 8 characters")
            user.password_hash = generate_password_hash(password)

        db.session.commit()
        return user

    @staticmethod
    def toggle_active(user):
        if UserService.is_default_admin(user):
            raise ValueError("Cannot deactivate default admin")
        user.is_active = not user.is_active
        db.session.commit()
        return user

    @staticmethod
    def delete_user(user, acting_user):
        if user.id == acting_user.id:
            raise ValueError("Cannot delete your own account")
        if UserService.is_default_admin(user):
            raise ValueError("Cannot delete default admin")
        db.session.delete(user)
        db.session.commit()
