import pytest

from app import create_app
from models.database import db, local_now
from models.question import Question
from models.response import Response, Submission

ADMIN_PASSWORD = 'kiosk-admin-pass'
BROWSER_HEADERS = {'Origin': 'http://localhost', 'User-Agent': 'KioskBrowser/1.0'}
ALL_GOOD = {'q1': 'sangat_baik', 'q2': 'sangat_baik', 'q3': 'sangat_baik', 'q4': 'sangat_baik', 'q5': 'sangat_baik'}

TEST_SETTINGS = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SQLALCHEMY_ENGINE_OPTIONS': {},
    'JWT_SECRET': 'test-secret',
    'ADMIN_DEFAULT_PASSWORD': ADMIN_PASSWORD,
    'SECURE_COOKIES': False,
    'APP_TIMEZONE': 'UTC',
    'RATE_LIMIT_MAX': 5,
    'RATE_LIMIT_WINDOW': 600,
    'DB_CONNECT_RETRIES': 1,
    'DB_CONNECT_DELAY': 0,
}


@pytest.fixture
def app():
    app = create_app(TEST_SETTINGS)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def admin_headers(client):
    resp = client.post('/admin/login', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {'Authorization': f"Bearer {resp.get_json()['token']}"}


def start_session(client):
    resp = client.get('/api/session')
    assert resp.status_code == 200
    return resp


def submit(client, answers=None, headers=None, **body):
    payload = {'questions': ALL_GOOD if answers is None else answers}
    payload.update(body)
    return client.post('/api/survey', json=payload, headers=BROWSER_HEADERS if headers is None else headers)


def add_submission(values, created_at=None, ip='10.0.0.1'):
    """Insert a submission directly; ``values`` maps question key to option value code."""
    submission = Submission(ip_address=ip, user_agent='pytest', created_at=created_at or local_now())
    db.session.add(submission)
    db.session.flush()
    for key, value in values.items():
        question = db.session.get(Question, int(key[1:]))
        option = next(o for o in question.options if o.option_value == value)
        db.session.add(Response(submission_id=submission.id, question_id=question.id, option_id=option.id))
    db.session.commit()
    return submission
