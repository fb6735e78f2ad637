from django.apps import AppConfig


class AutolinkerConfig(AppConfig):
    """Configuration for the autolinker Django app."""

    name = 'autolinker'
    verbose_name = 'Autolinker'
