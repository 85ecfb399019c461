import io
import json
import uuid
from datetime import date, timedelta

import pytest
from werkzeug.datastructures import FileStorage
from werkzeug.security import generate_password_hash

from config import TestConfig
from credhub import create_app
from credhub.models import (
    db, User, Institution, InstitutionUser, Certificate,
    Role, MemberRole, InstitutionStatus, CertificateStatus,
)

PASSWORD = 'password123'

# Smallest byte strings that carry a real PNG / PDF signature
PNG_BYTES = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR' + b'\x00' * 32
PDF_BYTES = b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n'


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Push an application context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, role=Role.USER, name=None, password=PASSWORD, is_active=True):
    user = User(email=email, password_hash=generate_password_hash(password), role=role,
                name=name or email.split('@')[0], is_active=is_active)
    db.session.add(user)
    db.session.commit()
    return user


def make_institution(name='Northfield University', status=InstitutionStatus.APPROVED):
    institution = Institution(name=name, type='UNIVERSITY', status=status,
                              is_approved=status == InstitutionStatus.APPROVED)
    db.session.add(institution)
    db.session.commit()
    return institution


def add_member(user, institution, role=MemberRole.ADMIN):
    membership = InstitutionUser(user_id=user.id, institution_id=institution.id, role=role)
    db.session.add(membership)
    db.session.commit()
    return membership


def make_certificate(institution, recipient_email='alice@example.com', status=CertificateStatus.ACTIVE,
                     expiry_date=None, file_hash=None, issued_by=None, **kwargs):
    certificate = Certificate(
        title=kwargs.pop('title', 'Bachelor of Science'),
        recipient_name=kwargs.pop('recipient_name', 'Alice Johnson'),
        recipient_email=recipient_email,
        issue_date=kwargs.pop('issue_date', date.today() - timedelta(days=10)),
        expiry_date=expiry_date,
        status=status,
        verification_id=str(uuid.uuid4()),
        file_hash=file_hash,
        institution_id=institution.id,
        issued_by_id=issued_by.id if issued_by else None,
        **kwargs
    )
    db.session.add(certificate)
    db.session.commit()
    return certificate


def upload(data, filename, content_type='application/octet-stream'):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


def json_upload(payload, filename='certificate.json'):
    return upload(json.dumps(payload).encode('utf-8'), filename, 'application/json')


@pytest.fixture
def admin(ctx):
    return make_user(ctx.config['DEFAULT_ADMIN_EMAIL'], role=Role.ADMIN, name='System Administrator')


@pytest.fixture
def institution(ctx):
    return make_institution()


@pytest.fixture
def institution_admin(institution):
    user = make_user('registrar@northfield.edu', role=Role.INSTITUTION, name='Registrar')
    add_member(user, institution, MemberRole.ADMIN)
    return user


@pytest.fixture
def recipient(ctx):
    return make_user('alice@example.com', role=Role.USER, name='Alice Johnson')


@pytest.fixture
def certificate(institution, institution_admin):
    return make_certificate(institution, issued_by=institution_admin)


@pytest.fixture
def seeded(app):
    """
    Users, an institution and a certificate for HTTP-level tests.
    Returns plain values, the objects do not outlive the setup context.
    """
    with app.app_context():
        admin = make_user(app.config['DEFAULT_ADMIN_EMAIL'], role=Role.ADMIN, name='System Administrator')
        institution = make_institution()
        staff = make_user('registrar@northfield.edu', role=Role.INSTITUTION, name='Registrar')
        add_member(staff, institution, MemberRole.ADMIN)
        user = make_user('alice@example.com', role=Role.USER, name='Alice Johnson')
        certificate = make_certificate(institution, recipient_email=user.email, issued_by=staff)
        return {
            'admin_id': admin.id,
            'admin_email': admin.email,
            'staff_id': staff.id,
            'staff_email': staff.email,
            'user_id': user.id,
            'user_email': user.email,
            'institution_id': institution.id,
            'certificate_id': certificate.id,
            'verification_id': certificate.verification_id,
        }


def login(client, email, password=PASSWORD, locale='en'):
    return client.post(f'/{locale}/auth/login', data={'email': email, 'password': password})
