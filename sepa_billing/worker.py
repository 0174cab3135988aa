"""
Celery application for background batch processing and billing.

Run with:
    celery -A sepa_billing.worker worker --loglevel=INFO
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from sepa_billing.config import settings
from sepa_billing.core.logging import setup_logging

app = Celery(
    "sepa_billing",
    broker=settings.broker_url,
    include=[
        "sepa_billing.tasks.batch_tasks",
        "sepa_billing.tasks.billing_tasks",
    ],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_backend=None,
    task_ignore_result=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    timezone="UTC",
)


@celery_setup_logging.connect
def configure_worker_logging(**_):
    """Use the application's JSON logging instead of Celery's defaults."""
    setup_logging()
