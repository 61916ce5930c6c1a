from django.apps import AppConfig


class VaccinationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "Vaccination"
    verbose_name = "Vaccination scheduling"
