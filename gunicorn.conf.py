"""
Gunicorn configuration for LashClub.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Worker configuration
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'lashclub'

# Preload so the usage-reset scheduler starts once, in the master
preload_app = True

graceful_timeout = 30
