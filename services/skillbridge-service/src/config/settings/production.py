# services/skillbridge-service/src/config/settings/production.py
"""
Production settings for SkillBridge Service
"""

from .base import *

DEBUG = False

SECRET_KEY = os.environ['SECRET_KEY']

DATABASES['default']['CONN_MAX_AGE'] = int(os.environ.get('DB_CONN_MAX_AGE', 60))

EVENT_BACKEND = 'nats'
