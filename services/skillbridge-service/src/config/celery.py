# services/skillbridge-service/src/config/celery.py
"""
Celery application for SkillBridge Service.

Runs background badge re-evaluation and periodic counter reconciliation.
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('skillbridge')

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
