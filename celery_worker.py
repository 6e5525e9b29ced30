# celery_worker.py

"""
Celery Worker

Starts a worker for pass delivery, bulk update and maintenance queues.
"""

import sys
import logging

from passkit import create_app
from passkit.core import celery

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

# Binds celery.flask_app and the task configuration
flask_app = create_app()

if __name__ == '__main__':
    try:
        logger.info("Starting Celery worker")
        celery.worker_main([
            'worker',
            '--loglevel=INFO',
            '--hostname=passkit-worker@%h',
            '-Q', 'push-notifications,bulk-updates,celery',
            '--pool=prefork',
            '--concurrency=4',
            '--prefetch-multiplier=1',
            '--max-tasks-per-child=100',
        ])
    except Exception as e:
        logger.error(f"Failed to start worker: {e}", exc_info=True)
        sys.exit(1)
