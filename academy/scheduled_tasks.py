"""
Background scheduler setup for the academy portal.

The scheduler runs one-off mail delivery jobs queued by the Mailer so request
handlers never wait on SMTP.
"""

import logging


def init_scheduled_tasks(app):
    """
    Start the background scheduler and hand it to the mailer.

    Args:
        app: Flask application instance
    """
    from academy.extensions import scheduler, mailer

    logger = logging.getLogger('scheduled_tasks')

    mailer.scheduler = scheduler
    if not scheduler.running:
        scheduler.start()
        logger.info("Background scheduler started for outgoing mail.")
    else:
        logger.info("Scheduler already running")
