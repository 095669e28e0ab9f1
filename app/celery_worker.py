# app/celery_worker.py
from celery import Celery

from app.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CLEANUP_INTERVAL_SECONDS

celery_app = Celery(
    "cart",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# Explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "app.tasks.cleanup",
)

# sweeper porzuconych koszykow, beat wola go co kilka minut
celery_app.conf.beat_schedule = {
    "cleanup-abandoned-carts": {
        "task": "app.tasks.cleanup.run_cleanup",
        "schedule": CLEANUP_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
