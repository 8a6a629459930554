# gunicorn.conf.py
# Gunicorn configuration file
#
#   gunicorn -c gunicorn.conf.py 'app:create_app()'

import logging
import os

# Application
wsgi_app = 'app:create_app()'
bind = os.environ.get('BIND', '0.0.0.0:5001')

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stderr
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()

# Worker configuration
# One process: per-event playlist locks are held in process memory.
# Requests run on threads within it.
workers = 1
worker_class = 'gthread'
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
timeout = 120

# Server mechanics
daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None

# Hooks
def post_worker_init(worker):
    """Called after a worker has been forked and initialized."""
    logger = logging.getLogger(__name__)
    logger.info(f"=== Worker initialized in PID {os.getpid()} ({threads} threads) ===")


def worker_exit(server, worker):
    """Called when a worker exits; the app's atexit hook closes the pool."""
    logger = logging.getLogger(__name__)
    logger.info(f"Worker {worker.pid} exiting")
