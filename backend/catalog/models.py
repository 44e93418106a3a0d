from django.db import models
from django.conf import settings


class ServiceTemplate(models.Model):
    """Platform-defined service kind that providers opt into (e.g. "Tap repair")."""

    name = models.CharField(max_length=120, unique=True)
    category = models.CharField(max_length=80)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'service_templates'
        ordering = ['name']

    def __str__(self):
        return self.name


class ServiceCatalog(models.Model):
    """Customer-facing catalog entry used by the questionnaire booking flow."""

    name = models.CharField(max_length=120, unique=True)
    category = models.CharField(max_length=80)
    description = models.TextField(blank=True)
    base_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'service_catalogs'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.category})"


class Service(models.Model):
    """A provider's own listing, with the price they charge."""

    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='services'
    )
    template = models.ForeignKey(
        ServiceTemplate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='services'
    )

    name = models.CharField(max_length=120)
    category = models.CharField(max_length=80)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'services'

    def __str__(self):
        return f"{self.name} by {self.provider}"
