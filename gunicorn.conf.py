# gunicorn.conf.py
import os

# ASGI app so HTTP and websockets share the process
wsgi_app = "socialnet.asgi:application"

# Worker configuration
# Subscriptions live in process memory: keep a single worker
workers = int(os.getenv("GUNICORN_WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = int(os.getenv("GUNICORN_TIMEOUT", 120))
keepalive = 2

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# Process naming
proc_name = "socialnet-app"

# Bind address
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")

# Security headers (if behind proxy)
forwarded_allow_ips = "*"
