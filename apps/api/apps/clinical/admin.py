from django.contrib import admin
from .models import Appointment, AppointmentService, Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'document_number', 'phone', 'created_at']
    search_fields = ['first_name', 'last_name', 'document_number', 'email']
    readonly_fields = ['id', 'created_at', 'updated_at']


class AppointmentServiceInline(admin.TabularInline):
    """
    Session records are soft-deleted through the API; the inline is read-only.
    """
    model = AppointmentService
    extra = 0
    fields = ['order', 'session_number', 'deleted_at', 'deleted_by', 'delete_reason']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['scheduled_date', 'patient', 'status', 'reservation_amount', 'created_by']
    list_filter = ['status', 'scheduled_date']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'attended_by', 'attended_at', 'created_at', 'updated_at']
    inlines = [AppointmentServiceInline]

    def has_delete_permission(self, request, obj=None):
        # Appointments are cancelled, never deleted
        return False
