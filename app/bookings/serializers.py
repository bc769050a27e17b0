"""
DRF serializers for the bookings API.

Request serializers validate shape only; every business rule (roles,
states, availability) is enforced by BookingService so the same rules
hold for admin actions and scheduled jobs.
"""

from __future__ import annotations

from rest_framework import serializers

from bookings.models import (
    Booking,
    BookingAuditLog,
    LocationType,
    RescheduleAction,
    RescheduleRequest,
)


# =============================================================================
# Requests
# =============================================================================


class BookingCreateSerializer(serializers.Serializer):
    service_id = serializers.UUIDField()
    scheduled_start = serializers.DateTimeField()
    location_type = serializers.ChoiceField(choices=LocationType.choices)
    address = serializers.CharField(required=False, allow_blank=True, default="")
    client_provides_materials = serializers.BooleanField(required=False, default=False)


class ReasonSerializer(serializers.Serializer):
    """Optional free-text reason for decline and cancel."""

    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class RefundRequestSerializer(serializers.Serializer):
    amount_pence = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, default="requested_by_customer")


# =============================================================================
# Responses
# =============================================================================


class BookingSerializer(serializers.ModelSerializer):
    service_title = serializers.CharField(source="service.title", read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "client",
            "freelancer",
            "service",
            "service_title",
            "scheduled_start",
            "scheduled_end",
            "location_type",
            "address",
            "client_provides_materials",
            "base_price_pence",
            "materials_price_pence",
            "travel_price_pence",
            "platform_fee_pence",
            "total_pence",
            "status",
            "payment_status",
            "expires_at",
            "auto_confirm_at",
            "completed_at",
            "cancelled_by",
            "cancellation_reason",
            "cancelled_at",
            "declined_reason",
            "declined_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingAuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingAuditLog
        fields = ["id", "action", "actor", "old_status", "new_status", "details", "created_at"]
        read_only_fields = fields


class BookingCreatedSerializer(serializers.Serializer):
    booking = BookingSerializer()
    payment_id = serializers.UUIDField()
    client_secret = serializers.CharField()


class CancellationSerializer(serializers.Serializer):
    booking = BookingSerializer()
    refund_percent = serializers.IntegerField()
    refund_amount_pence = serializers.IntegerField()
    hours_before_service = serializers.IntegerField()
    refund_issued_pence = serializers.IntegerField()
    released_pence = serializers.IntegerField()
    reliability = serializers.DictField(allow_null=True)


class CheckoutSerializer(serializers.Serializer):
    payment_id = serializers.UUIDField()
    client_secret = serializers.CharField()
    amount_pence = serializers.IntegerField()


# =============================================================================
# Rescheduling
# =============================================================================


class RescheduleRequestCreateSerializer(serializers.Serializer):
    new_start = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class RescheduleRespondSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=RescheduleAction.choices)
    alternative_start = serializers.DateTimeField(required=False, allow_null=True, default=None)
    message = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class RescheduleRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = RescheduleRequest
        fields = [
            "id",
            "booking",
            "requested_by",
            "original_start",
            "original_end",
            "proposed_start",
            "proposed_end",
            "reason",
            "status",
            "responded_by",
            "responded_at",
            "response_message",
            "counter_proposed_start",
            "counter_proposed_end",
            "created_at",
        ]
        read_only_fields = fields
