"""Sales models - treatment packages (orders)."""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _
from decimal import Decimal
import uuid


class OrderQuerySet(models.QuerySet):
    def uninvoiced(self):
        return self.filter(invoice__isnull=True)

    def invoiced(self):
        return self.filter(invoice__isnull=False)


class Order(models.Model):
    """
    Purchased package of sessions of one service.

    Business Rules:
    - final_price = original_price - discount
    - discount >= 0 (a negotiated price never exceeds the list price)
    - once invoiced, the price is frozen in the invoice total
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name=_('Patient')
    )
    service = models.ForeignKey(
        'catalog.Service',
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name=_('Service')
    )
    invoice = models.ForeignKey(
        'billing.Invoice',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
        verbose_name=_('Invoice')
    )

    total_sessions = models.PositiveIntegerField(_('Total Sessions'), default=1)
    original_price = models.DecimalField(
        _('Original Price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Service list price at the time of purchase')
    )
    discount = models.DecimalField(
        _('Discount'),
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )
    final_price = models.DecimalField(
        _('Final Price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('original_price - discount')
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders_created',
        verbose_name=_('Created By')
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        verbose_name = _('Order')
        verbose_name_plural = _('Orders')
        indexes = [
            models.Index(fields=['patient', 'invoice'], name='idx_order_patient_invoice'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount__gte=0),
                name='order_discount_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(final_price__gte=0),
                name='order_final_price_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(total_sessions__gte=1),
                name='order_total_sessions_positive'
            ),
        ]

    def __str__(self):
        return f'Order {self.id} - {self.total_sessions} sessions - {self.final_price}'

    def save(self, *args, **kwargs):
        """Enforce full_clean() so pricing rules hold for every write path."""
        self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()

        # INVARIANT: discount is never negative
        if self.discount is not None and self.discount < 0:
            raise ValidationError({'discount': 'Discount cannot be negative'})

        # INVARIANT: final_price = original_price - discount
        if None not in (self.original_price, self.discount, self.final_price):
            expected = self.original_price - self.discount
            if self.final_price != expected:
                raise ValidationError({
                    'final_price': (
                        f'Final price mismatch: expected {expected} '
                        f'(original {self.original_price} - discount {self.discount}), '
                        f'got {self.final_price}'
                    )
                })

    @property
    def is_invoiced(self):
        return self.invoice_id is not None

    def apply_price(self, negotiated_price=None):
        """
        Set final_price/discount from an optional negotiated price.

        Without a negotiated price the package sells at list price.
        """
        if negotiated_price is None:
            self.final_price = self.original_price
            self.discount = Decimal('0.00')
        else:
            if negotiated_price < 0:
                raise ValidationError(
                    f'Negotiated price cannot be negative, got {negotiated_price}'
                )
            if negotiated_price > self.original_price:
                raise ValidationError(
                    f'Negotiated price {negotiated_price} exceeds list price {self.original_price}'
                )
            self.final_price = negotiated_price
            self.discount = self.original_price - negotiated_price
        return self
