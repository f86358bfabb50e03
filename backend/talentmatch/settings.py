"""
Django settings for talentmatch project.

Most values can be overridden through environment variables so the same
settings module serves local development, workers and tests.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-insecure-secret-key')
DEBUG = _env_bool('DJANGO_DEBUG', True)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'recruiting',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'talentmatch.urls'
WSGI_APPLICATION = 'talentmatch.wsgi.application'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# PostgreSQL is required for SKIP LOCKED claims across worker processes.
# SQLite is only used for local development and the test suite.
if os.environ.get('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ['POSTGRES_DB'],
            'USER': os.environ.get('POSTGRES_USER', 'postgres'),
            'PASSWORD': os.environ.get('POSTGRES_PASSWORD', ''),
            'HOST': os.environ.get('POSTGRES_HOST', 'localhost'),
            'PORT': os.environ.get('POSTGRES_PORT', '5432'),
            'CONN_MAX_AGE': _env_int('POSTGRES_CONN_MAX_AGE', 60),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Uploaded resumes are held in memory and stored on the job row
DATA_UPLOAD_MAX_MEMORY_SIZE = 60 * 1024 * 1024
FILE_UPLOAD_MAX_MEMORY_SIZE = 60 * 1024 * 1024

REST_FRAMEWORK = {
    'EXCEPTION_HANDLER': 'recruiting.exceptions.custom_exception_handler',
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.MultiPartParser',
        'rest_framework.parsers.FormParser',
    ],
}

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TIMEZONE = TIME_ZONE

# Gemini
GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY', '')
GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-2.0-flash')
GEMINI_EMBEDDING_MODEL = os.environ.get('GEMINI_EMBEDDING_MODEL', 'text-embedding-004')

# Job queue / scheduler
JOB_QUEUE = {
    'WORKER_ID': os.environ.get('JOB_QUEUE_WORKER_ID', 'default-worker'),
    'POOL_SIZE': _env_int('JOB_QUEUE_POOL_SIZE', 5),
    'BATCH_SIZE': _env_int('JOB_QUEUE_BATCH_SIZE', 5),
    'POLL_INTERVAL': _env_float('JOB_QUEUE_POLL_INTERVAL', 5.0),
    'STALE_CHECK_INTERVAL': _env_float('JOB_QUEUE_STALE_CHECK_INTERVAL', 60.0),
    'STALE_THRESHOLD_MINUTES': _env_int('JOB_QUEUE_STALE_THRESHOLD_MINUTES', 15),
    'HEARTBEAT_INTERVAL': _env_float('JOB_QUEUE_HEARTBEAT_INTERVAL', 30.0),
    'RETENTION_DAYS': _env_int('JOB_QUEUE_RETENTION_DAYS', 30),
}

# Candidate enrichment and multi-pass matching
ENRICHMENT = {
    'STALENESS_TTL_DAYS': _env_int('ENRICHMENT_STALENESS_TTL_DAYS', 7),
    'SOURCE_SELECTION_ENABLED': _env_bool('ENRICHMENT_SOURCE_SELECTION_ENABLED', False),
    'MULTI_PASS_ENABLED': _env_bool('ENRICHMENT_MULTI_PASS_ENABLED', True),
    'BORDERLINE_MIN': _env_int('ENRICHMENT_BORDERLINE_MIN', 50),
    'BORDERLINE_MAX': _env_int('ENRICHMENT_BORDERLINE_MAX', 75),
    'MATCH_MAX_WORKERS': _env_int('ENRICHMENT_MATCH_MAX_WORKERS', 1),
    'GITHUB_TOKEN': os.environ.get('GITHUB_TOKEN', ''),
    'TWITTER_BEARER_TOKEN': os.environ.get('TWITTER_BEARER_TOKEN', ''),
    'TAVILY_API_KEY': os.environ.get('TAVILY_API_KEY', ''),
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'recruiting': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
