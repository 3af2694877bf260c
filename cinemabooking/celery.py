import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cinemabooking.settings')

app = Celery('cinemabooking')
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks()

app.conf.beat_schedule = {
    'show-lifecycle-sweep': {
        'task': 'bookings.tasks.run_show_lifecycle_sweep',
        'schedule': float(os.environ.get('SHOW_SWEEP_INTERVAL', '60')),
    },
}
