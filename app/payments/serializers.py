"""
DRF serializers for the payments API.

Payout endpoints are admin-only; the serializers here only validate the
override request and render payouts with their audit history.
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Payout, PayoutAuditLog
from payments.state_machines import PayoutState


class PayoutOverrideSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PayoutState.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class PayoutAuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutAuditLog
        fields = ["action", "actor", "old_status", "new_status", "details", "created_at"]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    """
    Payout with amounts in pence and its audit trail.

    Usage:
        serializer = PayoutSerializer(payout)
        data = serializer.data
    """

    audit_log = PayoutAuditLogSerializer(source="audit_logs", many=True, read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "freelancer",
            "booking",
            "service_amount_pence",
            "commission_pence",
            "booking_fee_pence",
            "payout_amount_pence",
            "status",
            "scheduled_date",
            "processed_date",
            "stripe_transfer_id",
            "error_message",
            "admin_notes",
            "audit_log",
            "created_at",
        ]
        read_only_fields = fields
