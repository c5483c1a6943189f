# services/skillbridge-service/src/config/settings/development.py
"""
Development settings for SkillBridge Service
"""

from .base import *

DEBUG = True

ALLOWED_HOSTS = ['*']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'skillbridge_db'),
        'USER': os.environ.get('DB_USER', 'skillbridge'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'skillbridge_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
    }
}

# Log events instead of requiring a broker
EVENT_BACKEND = os.environ.get('EVENT_BACKEND', 'log')

SKILLBRIDGE['BADGE_REEVALUATION'] = os.environ.get('BADGE_REEVALUATION', 'sync')

# Logging
LOGGING['loggers']['apps']['level'] = 'DEBUG'
