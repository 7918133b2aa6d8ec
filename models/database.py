from datetime import datetime
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context
from flask_sqlalchemy import SQLAlchemy

import config

db = SQLAlchemy()


def app_timezone() -> ZoneInfo:
    name = config.APP_TIMEZONE
    if has_app_context():
        name = current_app.config.get("APP_TIMEZONE", name)
    return ZoneInfo(name)


def local_now() -> datetime:
    # Stored timestamps are naive, in the application timezone
    return datetime.now(app_timezone()).replace(tzinfo=None)
