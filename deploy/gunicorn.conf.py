"""
Gunicorn configuration for the CBT exam API.

Exam sessions and their clocks live in process memory, so the API runs a
single Uvicorn worker per instance.
"""
import logging
import os

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = 120
graceful_timeout = 30
keepalive = 5

# Logging
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "-")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "-")
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "cbt"
wsgi_app = "cbt.main:app"

# Server mechanics
daemon = False
pidfile = "/tmp/cbt-gunicorn.pid"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

logger = logging.getLogger("gunicorn.error")


def when_ready(server):
    logger.info(f"CBT exam API listening on {bind}")


def worker_int(worker):
    """Sessions still in progress are lost when a worker is interrupted."""
    logger.warning(f"Worker {worker.pid} interrupted; open exam sessions are dropped")
