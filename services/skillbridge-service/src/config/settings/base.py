# services/skillbridge-service/src/config/settings/base.py
"""
Base settings for SkillBridge Service
"""

import os
import sys
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(BASE_DIR.parent.parent.parent))

SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.environ.get('DEBUG', 'False').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

SERVICE_NAME = 'skillbridge-service'
SERVICE_VERSION = os.environ.get('SERVICE_VERSION', '1.0.0')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'apps.core',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'skillbridge_db'),
        'USER': os.environ.get('DB_USER', 'skillbridge_user'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'skillbridge_password'),
        'HOST': os.environ.get('DB_HOST', 'pgbouncer'),
        'PORT': os.environ.get('DB_PORT', '6432'),
        'ATOMIC_REQUESTS': False,
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379/5')
CACHES = {'default': {'BACKEND': 'django_redis.cache.RedisCache', 'LOCATION': REDIS_URL}}

# Celery Configuration
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 300  # 5 minutes

CELERY_BEAT_SCHEDULE = {
    'reconcile-badge-counts': {
        'task': 'apps.core.tasks.reconcile_badge_counts',
        'schedule': crontab(hour=3, minute=0),  # Daily at 03:00 UTC
    },
}

# NATS Configuration
NATS_SERVERS = os.environ.get('NATS_SERVERS', 'nats://localhost:4222').split(',')
NATS_USER = os.environ.get('NATS_USER', None)
NATS_PASSWORD = os.environ.get('NATS_PASSWORD', None)
NATS_STREAM_NAME = os.environ.get('NATS_STREAM_NAME', 'SKILLBRIDGE_EVENTS')

# Event sink: 'nats', 'log' or 'memory'
EVENT_BACKEND = os.environ.get('EVENT_BACKEND', 'nats')

# Progression and marketplace engine tunables
SKILLBRIDGE = {
    'ENROLLMENT_XP': 25,
    'DEFAULT_MODULE_XP': 50,
    'DEFAULT_COURSE_XP': 500,
    'DEFAULT_QUIZ_XP': 100,
    'FAILED_QUIZ_XP_RATIO': 0.3,
    'GIG_ACCEPTED_XP': 150,
    'GIG_COMPLETION_MIN_XP': 200,
    'GIG_COMPLETION_BUDGET_RATIO': 0.1,
    'DEFAULT_PASSING_SCORE': 70,
    'DEFAULT_ATTEMPTS_ALLOWED': 3,
    'DEFAULT_MAX_APPLICATIONS': 10,
    'GIG_EXPIRY_DAYS': 30,
    'NEARBY_MAX_DISTANCE_METERS': 10000,
    'SEARCH_RADIUS_KM': 50,
    'SEARCH_RESULT_LIMIT': 20,
    'RECOMMENDATION_LIMIT': 5,
    'BADGE_REEVALUATION': os.environ.get('BADGE_REEVALUATION', 'async'),
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'shared': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
