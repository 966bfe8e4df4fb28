"""Catalog models - treatments the clinic sells."""
from django.db import models
from django.utils.translation import gettext_lazy as _
from decimal import Decimal
import uuid


class ServiceQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Service(models.Model):
    """
    Treatment offered by the clinic (e.g. laser hair removal).

    base_price is the list price of a whole package; default_sessions is the
    number of sessions a package includes unless the booking overrides it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(_('Name'), max_length=200)
    description = models.TextField(_('Description'), blank=True, default='')
    base_price = models.DecimalField(
        _('Base Price'),
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )
    default_sessions = models.PositiveIntegerField(
        _('Default Sessions'),
        default=1,
        help_text=_('Sessions included in a package of this service')
    )
    is_active = models.BooleanField(_('Active'), default=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    objects = ServiceQuerySet.as_manager()

    class Meta:
        db_table = 'services'
        ordering = ['name']
        verbose_name = _('Service')
        verbose_name_plural = _('Services')
        constraints = [
            models.CheckConstraint(
                condition=models.Q(base_price__gte=0),
                name='service_base_price_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(default_sessions__gte=1),
                name='service_default_sessions_positive'
            ),
        ]

    def __str__(self):
        return self.name
