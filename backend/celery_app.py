"""
Celery application for background rating work.

Game saves enqueue one apply task per finished game on the ratings queue;
full recalculations are long batch jobs and go to a separate maintenance
queue so they never hold up per-game updates.

Environment:
    REDIS_URL: broker and result backend (default redis://localhost:6379/0)
    CELERY_RATINGS_QUEUE / CELERY_MAINTENANCE_QUEUE: queue names
    RECALCULATION_TIME_LIMIT: hard limit in seconds for a recalculation task
"""
import os
from celery import Celery
from dotenv import load_dotenv

load_dotenv()

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
RATINGS_QUEUE = os.getenv('CELERY_RATINGS_QUEUE', 'ratings')
MAINTENANCE_QUEUE = os.getenv('CELERY_MAINTENANCE_QUEUE', 'maintenance')
RECALCULATION_TIME_LIMIT = int(os.getenv('RECALCULATION_TIME_LIMIT', '3600'))

app = Celery(
    'card_elo',
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=['tasks']
)

app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    result_expires=3600,

    # One game at a time per worker; a lost worker's game is re-queued
    # (applying it twice is a no-op)
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_default_queue=RATINGS_QUEUE,
    task_routes={
        'card_elo.tasks.apply_game_ratings_task': {'queue': RATINGS_QUEUE},
        'card_elo.tasks.recalculate_ratings_task': {'queue': MAINTENANCE_QUEUE},
    },
    task_annotations={
        'card_elo.tasks.recalculate_ratings_task': {
            'time_limit': RECALCULATION_TIME_LIMIT,
            'acks_late': False,
        },
    },
)

if __name__ == '__main__':
    app.start()
