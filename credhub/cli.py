"""
Database management commands: `flask init-db`, `flask seed`, `flask create-admin`.
"""
import uuid
from datetime import date, timedelta

import click
from flask import current_app
from werkzeug.security import generate_password_hash

from credhub.models import (
    db, User, Institution, InstitutionUser, Certificate,
    Role, MemberRole, InstitutionStatus, CertificateStatus,
)

SEED_INSTITUTIONS = [
    # name, type, status, admin email
    ('Northfield University', 'UNIVERSITY', InstitutionStatus.APPROVED, 'registrar@northfield.edu'),
    ('Harbor Training Center', 'TRAINING_CENTER', InstitutionStatus.PENDING, 'admin@harbortraining.org'),
    ('Summit College', 'COLLEGE', InstitutionStatus.SUSPENDED, 'office@summitcollege.edu'),
]

SEED_RECIPIENTS = [
    ('Alice Johnson', 'alice@example.com'),
    ('Bob Martinez', 'bob@example.com'),
]


def _get_or_create_user(email, password, role, name):
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, password_hash=generate_password_hash(password), role=role, name=name)
        db.session.add(user)
        db.session.flush()
    return user


def seed_database():
    admin = _get_or_create_user(current_app.config['DEFAULT_ADMIN_EMAIL'], 'admin123', Role.ADMIN,
                                'System Administrator')

    institutions = []
    for name, kind, status, admin_email in SEED_INSTITUTIONS:
        institution = Institution.query.filter_by(name=name).first()
        if institution is None:
            institution = Institution(name=name, type=kind, status=status,
                                      is_approved=status == InstitutionStatus.APPROVED,
                                      email=admin_email)
            db.session.add(institution)
            db.session.flush()
        staff = _get_or_create_user(admin_email, 'password', Role.INSTITUTION, f'{name} Admin')
        if not InstitutionUser.query.filter_by(user_id=staff.id, institution_id=institution.id).first():
            db.session.add(InstitutionUser(user_id=staff.id, institution_id=institution.id, role=MemberRole.ADMIN))
        institutions.append((institution, staff))

    issuer_institution, issuer = institutions[0]
    for recipient_name, recipient_email in SEED_RECIPIENTS:
        _get_or_create_user(recipient_email, 'password', Role.USER, recipient_name)
        if Certificate.query.filter_by(recipient_email=recipient_email).first():
            continue
        db.session.add(Certificate(
            title='Bachelor of Science',
            description='Awarded on completion of the undergraduate programme.',
            type='DEGREE',
            recipient_name=recipient_name,
            recipient_email=recipient_email,
            issue_date=date.today() - timedelta(days=30),
            expiry_date=None,
            status=CertificateStatus.ACTIVE,
            verification_id=str(uuid.uuid4()),
            institution_id=issuer_institution.id,
            issued_by_id=issuer.id,
        ))

    db.session.commit()
    return admin


def register_cli(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Drop and recreate all tables."""
        db.drop_all()
        db.create_all()
        click.echo('Database tables created.')

    @app.cli.command('seed')
    def seed_command():
        """Insert demo institutions, users and certificates."""
        admin = seed_database()
        click.echo(f'Seed data loaded. Admin account: {admin.email}')

    @app.cli.command('create-admin')
    @click.argument('email')
    @click.argument('password')
    def create_admin_command(email, password):
        """Create an ADMIN account, or promote an existing one."""
        user = User.query.filter_by(email=email.lower()).first()
        if user is None:
            user = User(email=email.lower(), password_hash=generate_password_hash(password),
                        role=Role.ADMIN, name='Administrator')
            db.session.add(user)
        else:
            user.role = Role.ADMIN
            user.password_hash = generate_password_hash(password)
        db.session.commit()
        click.echo(f'Admin user {user.email} ready.')
