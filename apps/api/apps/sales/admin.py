from django.contrib import admin
from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Treatment packages.

    Prices of invoiced orders are frozen in the invoice total, so they are
    read-only here once an invoice is linked.
    """
    list_display = ['id', 'patient', 'service', 'total_sessions', 'final_price', 'invoice', 'created_at']
    list_filter = ['service', 'created_at']
    search_fields = ['patient__first_name', 'patient__last_name', 'service__name']
    readonly_fields = ['id', 'discount', 'invoice', 'created_at', 'updated_at']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'patient', 'service', 'total_sessions', 'invoice')
        }),
        ('Financial', {
            'fields': ('original_price', 'discount', 'final_price')
        }),
        ('Timestamps', {
            'fields': ('created_by', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        readonly = list(self.readonly_fields)
        if obj and obj.is_invoiced:
            readonly.extend(['patient', 'service', 'total_sessions', 'original_price', 'final_price'])
        return readonly

    def has_delete_permission(self, request, obj=None):
        if obj and obj.is_invoiced:
            return False
        return super().has_delete_permission(request, obj)
