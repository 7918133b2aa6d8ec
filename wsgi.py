import config
from app import configure_logging, create_app


# Entry point for WSGI servers (e.g. `gunicorn wsgi:app`).
configure_logging(config.LOG_LEVEL, config.LOG_DIR)
app = create_app()
