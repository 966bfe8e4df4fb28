"""Commissions app configuration."""
from django.apps import AppConfig


class CommissionsConfig(AppConfig):
    """Configuration for commissions app."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.commissions'
    verbose_name = 'Commissions'
