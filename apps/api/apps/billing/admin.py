from django.contrib import admin
from .models import Invoice, Payment


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['amount_paid', 'payment_method', 'payment_type', 'payment_date']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    """Status is derived from payments; it is never edited by hand."""
    list_display = ['id', 'patient', 'total_amount', 'status', 'due_date', 'created_at']
    list_filter = ['status', 'due_date']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'total_amount', 'status', 'cancelled_at', 'created_at', 'updated_at']
    inlines = [PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_date', 'patient', 'amount_paid', 'payment_method', 'payment_type', 'invoice']
    list_filter = ['payment_method', 'payment_type', 'payment_date']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'created_at']
