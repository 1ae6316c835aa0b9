import logging

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


logger = logging.getLogger(__name__)


class PaymentSystemConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payment_system"
    verbose_name = "Payment System"

    def ready(self):
        """Check the settlement configuration when Django starts"""
        from payment_system.domain.exceptions import ValidationError
        from payment_system.domain.services.commission import validate_rate

        try:
            rate = validate_rate(getattr(settings, "PLATFORM_FEE_PERCENT", "10"))
        except ValidationError as e:
            raise ImproperlyConfigured(f"PLATFORM_FEE_PERCENT is invalid: {e}") from e

        logger.debug(f"Payment System ready, default platform fee {rate}%")
