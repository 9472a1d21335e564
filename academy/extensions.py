"""
Shared Flask extension instances.

Centralized to avoid circular imports. Extensions are initialized
here but configured in create_app().
"""

import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from apscheduler.schedulers.background import BackgroundScheduler
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from academy.mailer import Mailer

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
# Runs queued mail deliveries; started by init_scheduled_tasks()
scheduler = BackgroundScheduler()
mailer = Mailer()


def client_ip():
    """Client address for rate limiting; trusts the first X-Forwarded-For hop."""
    try:
        from flask import request
        forwarded_for = request.headers.get('X-Forwarded-For', '')
        first_hop = forwarded_for.split(',')[0].strip()
        return first_hop or request.remote_addr
    except RuntimeError:
        return get_remote_address()


def _rate_limit_storage():
    """Explicit RATELIMIT_STORAGE_URI, then memory under CI, then Redis."""
    if os.environ.get('RATELIMIT_STORAGE_URI'):
        return os.environ['RATELIMIT_STORAGE_URI']
    if os.environ.get('CI'):
        return 'memory://'
    return os.environ.get('REDIS_URL', 'redis://localhost:6379')


limiter = Limiter(
    key_func=client_ip,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri=_rate_limit_storage(),
    strategy="fixed-window",
)
