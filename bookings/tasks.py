import logging

from celery import shared_task
from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError
from django_redis import get_redis_connection

from movies.services import ShowStatusService

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "celery_lock:run_show_lifecycle_sweep"


def _uses_redis():
    return settings.CACHES['default']['BACKEND'] == 'django_redis.cache.RedisCache'


def acquire_lock(lock_key, timeout):
    if _uses_redis():
        redis_conn = get_redis_connection("default")
        return bool(redis_conn.set(lock_key, "locked", nx=True, ex=timeout))
    return cache.add(lock_key, "locked", timeout)


def release_lock(lock_key):
    if _uses_redis():
        get_redis_connection("default").delete(lock_key)
    else:
        cache.delete(lock_key)


@shared_task(bind=True, max_retries=3)
def run_show_lifecycle_sweep(self):

    timeout = getattr(settings, 'SHOW_SWEEP_LOCK_TIMEOUT', 300)
    if not acquire_lock(SWEEP_LOCK_KEY, timeout):
        logger.info("Another worker is already running the lifecycle sweep - skipping")
        return "Skipped - lock held by another worker"

    try:
        changes = ShowStatusService().tick()
        return {'started': list(changes.to_start), 'ended': list(changes.to_end)}

    except DatabaseError as e:
        logger.error(f"Error in run_show_lifecycle_sweep task: {e}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    finally:
        release_lock(SWEEP_LOCK_KEY)
