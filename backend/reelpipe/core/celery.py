from celery import Celery
import os
from dotenv import load_dotenv
from reelpipe.core.config import settings

# Load .env explicitly; the worker may start outside the app's working directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), '.env')
load_dotenv(dotenv_path)

redis_url = os.getenv('REDIS_URL') or settings.redis_url or 'redis://localhost:6379'

if not redis_url.startswith(('redis://', 'rediss://')):
    redis_url = f'redis://{redis_url}'

celery_app = Celery(
    "reelpipe",
    broker=redis_url,
    backend=redis_url,
    include=[
        "reelpipe.tasks.cleanup_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes

    broker_connection_retry=True,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,

    broker_transport_options={
        'visibility_timeout': 3600,
        'max_retries': 5,
        'interval_start': 0,
        'interval_step': 1,
        'interval_max': 30,
    },

    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    'reconcile-deleted-videos': {
        'task': 'reconcile_deleted_videos',
        'schedule': settings.reconcile_interval_minutes * 60.0,
    },
}

if __name__ == "__main__":
    celery_app.start()
