import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'talentmatch.settings')
app = Celery('talentmatch')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'reclaim-stale-jobs': {
        'task': 'recruiting.tasks.reclaim_stale_jobs',
        'schedule': 60.0,  # Every minute
    },
    'cleanup-old-jobs': {
        'task': 'recruiting.tasks.cleanup_old_jobs',
        'schedule': crontab(hour=2, minute=0),  # Daily at 2 AM
    },
    'log-queue-metrics': {
        'task': 'recruiting.tasks.log_queue_metrics',
        'schedule': crontab(minute='*/5'),
    },
}
