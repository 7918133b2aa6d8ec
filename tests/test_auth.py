import pytest
from sqlalchemy.exc import OperationalError

from app import create_app, wait_for_database
from conftest import ADMIN_PASSWORD, TEST_SETTINGS, start_session
from controllers.auth_controller import encode_token, ensure_admin_user
from models.database import db
from models.user_model import AdminUser


def login(client, username='admin', password=ADMIN_PASSWORD):
    return client.post('/admin/login', json={'username': username, 'password': password})


def test_login_rejects_wrong_password_then_accepts_right_one(client):
    for _ in range(2):
        resp = login(client, password='wrong')
        assert resp.status_code == 401
        assert resp.get_json() == {'success': False, 'error': 'Invalid credentials'}

    resp = login(client)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['user']['username'] == 'admin'

    dashboard = client.get('/admin/api/dashboard', headers={'Authorization': f"Bearer {body['token']}"})
    assert dashboard.status_code == 200


def test_unknown_user_gets_same_error(client):
    resp = login(client, username='ghost')
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid credentials'


@pytest.mark.parametrize('body', [{}, {'username': 'admin'}, {'password': 'x'}, ['admin']])
def test_login_requires_both_fields(client, body):
    assert client.post('/admin/login', json=body).status_code == 400


def test_login_records_last_login(client, app):
    login(client)
    with app.app_context():
        assert AdminUser.query.filter_by(username='admin').one().last_login is not None


def test_verify_returns_token_user(client, admin_headers):
    resp = client.get('/admin/api/verify', headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['user']['username'] == 'admin'


def test_missing_or_bad_token_is_401(client):
    resp = client.get('/admin/api/dashboard')
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'No token provided'

    resp = client.get('/admin/api/dashboard', headers={'Authorization': 'Bearer not-a-jwt'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid token'

    resp = client.get('/admin/api/dashboard', headers={'Authorization': 'Token abc'})
    assert resp.get_json()['error'] == 'No token provided'


def test_expired_admin_token_is_rejected(app, client):
    with app.app_context():
        token = encode_token({'id': 1, 'username': 'admin', 'name': 'Administrator'}, -5, 'admin')
    resp = client.get('/admin/api/dashboard', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 401


def test_survey_session_token_is_not_an_admin_token(client):
    cookie = start_session(client).headers['Set-Cookie']
    token = cookie.split(';', 1)[0].split('=', 1)[1]
    resp = client.get('/admin/api/dashboard', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 401


def test_ensure_admin_user_rotates_password(client, app):
    with app.app_context():
        ensure_admin_user('new-password-123')
        assert AdminUser.query.count() == 1
    assert login(client).status_code == 401
    assert login(client, password='new-password-123').status_code == 200


def test_ensure_admin_user_without_password_is_noop(ctx):
    assert ensure_admin_user('') is None
    assert AdminUser.query.count() == 1


def test_health_reports_database(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'healthy'
    assert resp.get_json()['database'] == 'connected'


def test_unknown_route_returns_json_error(client):
    resp = client.get('/api/nothing-here')
    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


def test_wait_for_database_gives_up(monkeypatch):
    app = create_app(TEST_SETTINGS, init_db=False)

    def unreachable(*args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    with app.app_context():
        monkeypatch.setattr(db.session, 'execute', unreachable)
        with pytest.raises(SystemExit) as exc:
            wait_for_database(app)
    assert exc.value.code == 1
