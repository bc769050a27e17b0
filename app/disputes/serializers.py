"""DRF serializers for the disputes API."""

from __future__ import annotations

from rest_framework import serializers

from disputes.models import Dispute, DisputeAuditLog, DisputeCategory, ResolutionType


class DisputeCreateSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField()
    category = serializers.ChoiceField(choices=DisputeCategory.choices)
    description = serializers.CharField(max_length=5000)


class DisputeResolveSerializer(serializers.Serializer):
    resolution_type = serializers.ChoiceField(choices=ResolutionType.choices)
    amount_pence = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    suspend_user_id = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["resolution_type"] == ResolutionType.PARTIAL_REFUND and not attrs.get("amount_pence"):
            raise serializers.ValidationError({"amount_pence": "Required for a partial refund."})
        return attrs


class DisputeAuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = DisputeAuditLog
        fields = ["id", "action", "actor", "old_status", "new_status", "details", "created_at"]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    audit_log = DisputeAuditLogSerializer(source="audit_logs", many=True, read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "booking",
            "raised_by",
            "category",
            "description",
            "status",
            "resolution_type",
            "resolution_amount_pence",
            "resolution_notes",
            "resolved_by",
            "resolved_at",
            "created_at",
            "updated_at",
            "audit_log",
        ]
        read_only_fields = fields
