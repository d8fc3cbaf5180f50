import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'portal_backend.settings')

app = Celery('portal_backend')

app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks()
