"""
Gunicorn configuration for the rewards ledger.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Sync workers; every ledger write is a short transaction
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'rewards-ledger'

# Preload so the settlement scheduler starts once, in the master
preload_app = True

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting rewards ledger...")


def on_exit(server):
    print("[Gunicorn] Rewards ledger shutting down...")
