"""
Gunicorn configuration for the school portal

Usage:
    gunicorn -c gunicorn_config.py schoolportal.wsgi:application

Socket, worker count and log paths can be overridden with GUNICORN_* variables
in the environment or the .env file.
"""

import multiprocessing

from decouple import config

# Server socket
bind = config('GUNICORN_BIND', default='unix:/var/run/gunicorn/schoolportal.sock')

# Worker processes
workers = config('GUNICORN_WORKERS', default=multiprocessing.cpu_count() * 2 + 1, cast=int)
worker_class = "sync"
# Report card and statement PDFs are rendered in-request
timeout = config('GUNICORN_TIMEOUT', default=60, cast=int)
keepalive = 2

# Logging
accesslog = config('GUNICORN_ACCESS_LOG', default='/var/log/gunicorn/schoolportal_access.log')
errorlog = config('GUNICORN_ERROR_LOG', default='/var/log/gunicorn/schoolportal_error.log')
loglevel = config('GUNICORN_LOG_LEVEL', default='info')
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

proc_name = "schoolportal"
pidfile = config('GUNICORN_PIDFILE', default='/var/run/gunicorn/schoolportal.pid')
daemon = False

preload_app = True

# Recycle workers periodically
max_requests = 1000
max_requests_jitter = 50
graceful_timeout = 30
