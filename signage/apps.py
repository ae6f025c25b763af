from django.apps import AppConfig


class SignageConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "signage"
    verbose_name = "Signage devices & proof-of-play"
