try:
    from .celery import app as celery_app
    __all__ = ('celery_app',)
except Exception:
    # Only beat and the matching task need Celery; the job scheduler runs without it
    celery_app = None
    __all__ = ()
