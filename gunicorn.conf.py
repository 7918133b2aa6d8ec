import os
from config import HOST, PORT

bind = os.getenv("GUNICORN_BIND", f"{HOST}:{PORT}")
# One worker: the submission rate limiter is held in process memory
workers = int(os.getenv("GUNICORN_WORKERS", "1"))
threads = int(os.getenv("GUNICORN_THREADS", "8"))
timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))
accesslog = "-"
errorlog = "-"
