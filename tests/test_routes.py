import io

import pytest

from credhub.models import db, ActivityLog, User, LogAction, LogStatus
from conftest import login, PNG_BYTES


def last_log(app, action):
    with app.app_context():
        log = ActivityLog.query.filter_by(action=action).order_by(ActivityLog.id.desc()).first()
        return (log.status, log.user_id, log.details) if log else None


class TestLocaleRouting:
    def test_root_uses_locale_cookie(self, client):
        resp = client.get('/', headers={'Cookie': 'NEXT_LOCALE=fr', 'Accept-Language': 'de'})
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith('/fr/')

    def test_root_uses_accept_language(self, client):
        resp = client.get('/', headers={'Accept-Language': 'de-DE,de;q=0.9,en;q=0.5'})
        assert resp.headers['Location'].endswith('/de/')

    def test_root_falls_back_to_default(self, client):
        resp = client.get('/', headers={'Accept-Language': 'ja'})
        assert resp.headers['Location'].endswith('/en/')

    def test_unknown_locale_is_404(self, client):
        assert client.get('/xx/').status_code == 404
        assert client.get('/xx/verify').status_code == 404

    def test_links_keep_current_locale(self, client):
        resp = client.get('/es/')
        assert resp.status_code == 200
        assert b'href="/es/verify"' in resp.data


class TestAuth:
    @pytest.mark.parametrize('email_key, landing', [
        ('admin_email', '/en/dashboard/admin'),
        ('staff_email', '/en/dashboard/institution'),
        ('user_email', '/en/dashboard/users'),
    ])
    def test_login_lands_on_role_dashboard(self, app, client, seeded, email_key, landing):
        resp = login(client, seeded[email_key])
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith('/en/dashboard')

        resp = client.get('/en/dashboard')
        assert resp.headers['Location'].endswith(landing)
        assert client.get(landing).status_code == 200

        status, user_id, _ = last_log(app, LogAction.LOGIN)
        assert status == LogStatus.SUCCESS

    def test_login_honours_same_site_next(self, client, seeded):
        resp = client.post('/en/auth/login?next=/en/verify',
                           data={'email': seeded['user_email'], 'password': 'password123'})
        assert resp.headers['Location'].endswith('/en/verify')

    def test_login_ignores_external_next(self, client, seeded):
        resp = client.post('/en/auth/login?next=https://evil.example.com/',
                           data={'email': seeded['user_email'], 'password': 'password123'})
        assert resp.headers['Location'].endswith('/en/dashboard')

    def test_bad_password(self, app, client, seeded):
        resp = login(client, seeded['user_email'], password='wrong-password')
        assert resp.status_code == 401
        status, user_id, _ = last_log(app, LogAction.LOGIN)
        assert status == LogStatus.FAILURE
        assert user_id is None

    def test_deactivated_account(self, app, client, seeded):
        with app.app_context():
            db.session.get(User, seeded['user_id']).is_active = False
            db.session.commit()

        resp = login(client, seeded['user_email'])
        assert resp.status_code == 403
        assert client.get('/en/dashboard').status_code == 302

    def test_logout(self, app, client, seeded):
        login(client, seeded['user_email'])
        resp = client.get('/fr/auth/logout')
        assert resp.headers['Location'].endswith('/fr/')

        status, user_id, _ = last_log(app, LogAction.LOGOUT)
        assert user_id == seeded['user_id']
        # Back to anonymous
        resp = client.get('/fr/dashboard')
        assert resp.status_code == 302
        assert '/fr/auth/login' in resp.headers['Location']


class TestDashboards:
    def test_role_gate(self, client, seeded):
        login(client, seeded['user_email'])
        assert client.get('/en/dashboard/admin').status_code == 403
        assert client.get('/en/dashboard/admin/logs').status_code == 403
        assert client.get('/en/dashboard/institution').status_code == 403

    def test_admin_logs_page(self, client, seeded):
        login(client, seeded['admin_email'])
        resp = client.get('/en/dashboard/admin/logs?category=AUTH')
        assert resp.status_code == 200
        assert b'logged in' in resp.data

    def test_user_dashboard_lists_own_certificates(self, client, seeded):
        login(client, seeded['user_email'])
        resp = client.get('/en/dashboard/users')
        assert seeded['verification_id'].encode() in resp.data


class TestPublicVerify:
    def test_lookup_by_id(self, client, seeded):
        resp = client.post('/en/verify', data={'verification_id': seeded['verification_id']})
        assert resp.headers['Location'].endswith(f"/en/verify/{seeded['verification_id']}")

        resp = client.get(resp.headers['Location'])
        assert resp.status_code == 200
        assert b'Bachelor of Science' in resp.data

    def test_unknown_certificate(self, client, seeded):
        assert client.get('/en/verify/does-not-exist').status_code == 404

    def test_empty_form(self, client):
        assert client.post('/en/verify', data={}).status_code == 400

    def test_bad_upload(self, client):
        resp = client.post('/en/verify', data={'file': (io.BytesIO(b'MZ'), 'tool.exe')},
                           content_type='multipart/form-data')
        assert resp.status_code == 400

    def test_upload_without_match(self, client, seeded):
        resp = client.post('/en/verify', data={'file': (io.BytesIO(PNG_BYTES), 'scan.png')},
                           content_type='multipart/form-data')
        assert resp.status_code == 200
        assert b'No matching certificate' in resp.data
