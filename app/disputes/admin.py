"""
Dispute admin configuration.

Resolution moves money, so it goes through the API (DisputeService);
the admin site only shows disputes and their audit trail.
"""

from django.contrib import admin

from disputes.models import Dispute, DisputeAuditLog


class DisputeAuditLogInline(admin.TabularInline):
    model = DisputeAuditLog
    extra = 0
    readonly_fields = ["action", "actor", "old_status", "new_status", "details", "created_at"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ["id", "booking", "raised_by", "category", "status", "resolution_type", "created_at"]
    list_filter = ["status", "category", "resolution_type"]
    search_fields = ["id", "booking__id", "raised_by__email"]
    raw_id_fields = ["booking", "raised_by", "resolved_by"]
    readonly_fields = [
        "id",
        "status",
        "resolution_type",
        "resolution_amount_pence",
        "resolved_by",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [DisputeAuditLogInline]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disputes are closed by resolution, never deleted."""
        return False
