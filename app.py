import logging
import os
import sys
import time

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

import config
from controllers.auth_controller import ensure_admin_user
from controllers.errors import RateLimitError, SessionError, SurveyError
from controllers.submission_gate import SESSION_COOKIE, RateLimiter
from models.database import db, local_now
from models.question import seed_default_questions
from routes.admin import admin_bp
from routes.public import public_bp

logger = logging.getLogger(__name__)


# --- Logging Setup ---
def configure_logging(level, log_dir=''):
    handlers = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, 'survey.log'), encoding='utf-8'))
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=handlers,
    )


def default_settings():
    settings = {
        'APP_ENV': config.APP_ENV,
        'SQLALCHEMY_DATABASE_URI': config.DATABASE_URL,
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': config.JWT_SECRET,
        'ADMIN_DEFAULT_PASSWORD': config.ADMIN_DEFAULT_PASSWORD,
        'ADMIN_TOKEN_TTL': config.ADMIN_TOKEN_TTL,
        'SURVEY_SESSION_TTL': config.SURVEY_SESSION_TTL,
        'RATE_LIMIT_MAX': config.RATE_LIMIT_MAX,
        'RATE_LIMIT_WINDOW': config.RATE_LIMIT_WINDOW,
        'SECURE_COOKIES': config.IS_PRODUCTION,
        'APP_TIMEZONE': config.APP_TIMEZONE,
        'DB_CONNECT_RETRIES': config.DB_CONNECT_RETRIES,
        'DB_CONNECT_DELAY': config.DB_CONNECT_DELAY,
        'CORS_ORIGINS': config.CORS_ORIGINS,
    }
    if not config.DATABASE_URL.startswith('sqlite'):
        settings['SQLALCHEMY_ENGINE_OPTIONS'] = {'pool_size': config.DB_POOL_SIZE, 'pool_pre_ping': True}
    return settings


# --- Database Startup ---
def wait_for_database(app):
    """Retry the first connection a bounded number of times, then exit non-zero."""
    retries = app.config['DB_CONNECT_RETRIES']
    for attempt in range(1, retries + 1):
        try:
            db.session.execute(text('SELECT 1'))
            logger.info("Database connected successfully")
            return
        except SQLAlchemyError:
            db.session.rollback()
            logger.info("Waiting for database... (%s/%s)", attempt, retries)
            time.sleep(app.config['DB_CONNECT_DELAY'])
    logger.critical("Failed to connect to database after %s attempts", retries)
    sys.exit(1)


def init_database(app):
    with app.app_context():
        wait_for_database(app)
        db.create_all()
        if seed_default_questions():
            logger.info("Default questions seeded")
        ensure_admin_user(app.config['ADMIN_DEFAULT_PASSWORD'])


# --- Error Handling ---
def register_error_handlers(app):
    @app.errorhandler(SurveyError)
    def handle_survey_error(err):
        # discard edits a handler made before rejecting the request
        db.session.rollback()
        response = jsonify(err.to_dict())
        response.status_code = err.status_code
        if isinstance(err, RateLimitError):
            response.headers['Retry-After'] = str(err.retry_after)
        if isinstance(err, SessionError):
            response.delete_cookie(SESSION_COOKIE, httponly=True, samesite='Strict',
                                   secure=app.config['SECURE_COOKIES'])
        return response

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        logger.exception("Database error: %s", err)
        return jsonify({'success': False, 'error': 'Database error'}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({'success': False, 'error': err.description}), err.code


# --- Flask Setup ---
def create_app(overrides=None, init_db=True):
    app = Flask(__name__)
    app.config.update(default_settings())
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)
    app.extensions['rate_limiter'] = RateLimiter(
        max_requests=app.config['RATE_LIMIT_MAX'],
        window_seconds=app.config['RATE_LIMIT_WINDOW'],
    )

    app.register_blueprint(public_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)

    @app.route('/health')
    def health():
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Health check failed: %s", exc)
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'timestamp': local_now().isoformat(),
            }), 503
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'timestamp': local_now().isoformat(),
        })

    if init_db:
        init_database(app)
    return app


# --- Run Server ---
if __name__ == '__main__':
    configure_logging(config.LOG_LEVEL, config.LOG_DIR)
    app = create_app()
    logger.info("Survey kiosk running on http://%s:%s", config.HOST, config.PORT)
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)
