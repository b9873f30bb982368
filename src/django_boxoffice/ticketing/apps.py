"""Django app configuration for the ticketing app."""

from django.apps import AppConfig


class DjangoBoxOfficeTicketingConfig(AppConfig):
    """Configuration for the ticketing app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_boxoffice.ticketing"
    label = "boxoffice_ticketing"
    verbose_name = "Ticketing"
