import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request
from werkzeug.security import check_password_hash, generate_password_hash

from controllers.errors import AuthenticationError, ValidationError
from models.database import db, local_now
from models.user_model import AdminUser

logger = logging.getLogger(__name__)

ADMIN_PURPOSE = 'admin'
ALGORITHM = 'HS256'

DEFAULT_ADMIN_USERNAME = 'admin'

# Checked when the username is unknown so both failures cost the same
_DUMMY_HASH = generate_password_hash('unknown-user')


def encode_token(claims, ttl_seconds, purpose):
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload.update({'purpose': purpose, 'iat': now, 'exp': now + timedelta(seconds=ttl_seconds)})
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=ALGORITHM)


def decode_token(token, purpose):
    """Return the claims of a valid token issued for ``purpose``; raise jwt.InvalidTokenError otherwise."""
    claims = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[ALGORITHM])
    if claims.get('purpose') != purpose:
        raise jwt.InvalidTokenError('wrong token purpose')
    return claims


class AuthController:
    def login(self, username, password):
        if not username or not password:
            raise ValidationError('Username and password required')

        user = AdminUser.query.filter_by(username=username, is_active=True).first()
        if user is None:
            check_password_hash(_DUMMY_HASH, password)
        if user is None or not user.validate_password(password):
            logger.info("Failed admin login for %r from %s", username, request.remote_addr)
            raise AuthenticationError('Invalid credentials')

        user.last_login = local_now()
        db.session.commit()

        token = encode_token(user.to_dict(), current_app.config['ADMIN_TOKEN_TTL'], ADMIN_PURPOSE)
        logger.info("Admin %s logged in", user.username)
        return {'token': token, 'user': user.to_dict()}

    def authenticate(self, token):
        if not token:
            raise AuthenticationError('No token provided')
        try:
            return decode_token(token, ADMIN_PURPOSE)
        except jwt.InvalidTokenError:
            raise AuthenticationError('Invalid token')


auth_controller = AuthController()


def bearer_token():
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return ''


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        g.admin = auth_controller.authenticate(bearer_token())
        return view(*args, **kwargs)
    return wrapped


def ensure_admin_user(password):
    """Create the default admin account or rotate its password."""
    if not password:
        logger.info("No ADMIN_DEFAULT_PASSWORD set, skipping admin user setup")
        return None

    user = AdminUser.query.filter_by(username=DEFAULT_ADMIN_USERNAME).first()
    if user is None:
        user = AdminUser(username=DEFAULT_ADMIN_USERNAME, name='Administrator', email='admin@localhost')
        db.session.add(user)
        logger.info("Admin user created")
    else:
        logger.info("Admin password updated")
    user.set_password(password)
    user.is_active = True
    db.session.commit()
    return user
