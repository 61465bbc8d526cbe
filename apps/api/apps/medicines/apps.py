"""Medicines app configuration."""
from django.apps import AppConfig


class MedicinesConfig(AppConfig):
    """Configuration for medicines app."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.medicines'
    verbose_name = 'Medicines'
