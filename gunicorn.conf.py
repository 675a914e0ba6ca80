"""Gunicorn production configuration for the import service."""
import multiprocessing
import os

bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() + 1))
worker_class = "uvicorn.workers.UvicornWorker"
# Commits of a full 5000-row upload can run for minutes.
timeout = 300
graceful_timeout = 60
keepalive = 5
max_requests = 500
max_requests_jitter = 50
preload_app = False
accesslog = "-"
errorlog = "-"
loglevel = "info"
