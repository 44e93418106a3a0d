"""Celery application for background dispatch processing."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "localhands.settings.base")

app = Celery("localhands")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
