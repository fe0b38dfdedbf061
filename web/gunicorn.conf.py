import os

wsgi_app = "config.wsgi:application"
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"


def cpu():
    return max(1, (os.cpu_count() or 1))


# Worker processes
workers = min(max(2, cpu() * 2), 8)

# Threads per worker; webhooks and checkout calls block on the DB and the gateway
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# Timeouts; keep above HTTP_TIMEOUT_SECS * HTTP_RETRY_MAX for gateway reads
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

# Application logs go through Django LOGGING (JSON); gunicorn keeps its own streams
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
