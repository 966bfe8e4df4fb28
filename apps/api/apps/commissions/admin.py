from django.contrib import admin
from .models import Commission


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ['sales_person', 'appointment', 'commission_amount', 'status', 'created_at']
    list_filter = ['status', 'payment_method', 'created_at']
    search_fields = ['sales_person__email', 'payment_reference']
    readonly_fields = [
        'id', 'sales_person', 'appointment', 'commission_rate', 'commission_amount', 'status',
        'approved_by', 'approved_at', 'paid_by', 'paid_at', 'created_at', 'updated_at',
    ]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'sales_person', 'appointment', 'status')
        }),
        ('Amount', {
            'fields': ('commission_rate', 'commission_amount')
        }),
        ('Review', {
            'fields': ('approved_by', 'approved_at', 'rejection_reason', 'notes')
        }),
        ('Payout', {
            'fields': ('paid_by', 'paid_at', 'payment_method', 'payment_reference'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )
