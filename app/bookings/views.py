"""
API views for the booking lifecycle.

Endpoints:
    POST /api/v1/bookings/                 - Create booking + payment intent
    GET  /api/v1/bookings/{id}/            - Booking detail (parties, admins)
    POST /api/v1/bookings/{id}/accept/     - Freelancer accepts
    POST /api/v1/bookings/{id}/decline/    - Freelancer declines (full refund)
    POST /api/v1/bookings/{id}/cancel/     - Either party cancels (policy refund)
    POST /api/v1/bookings/{id}/confirm/    - Client/admin confirms, releases escrow
    POST /api/v1/bookings/{id}/checkout/   - Re-issue payment intent
    POST /api/v1/bookings/{id}/refund/     - Client/admin refund request
    GET  /api/v1/bookings/{id}/payment/    - Payment status
    GET  /api/v1/bookings/{id}/reschedule/ - Reschedule request history
    POST /api/v1/bookings/{id}/reschedule/ - Propose a new start time
    GET  /api/v1/bookings/reschedule-requests/               - Requests awaiting my answer
    POST /api/v1/bookings/reschedule-requests/{id}/respond/  - Accept, decline or suggest

All business rules live in BookingService; views only translate
request data in and domain exceptions out (core.views.error_response).
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.serializers import (
    BookingAuditLogSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    CancellationSerializer,
    CheckoutSerializer,
    ReasonSerializer,
    RefundRequestSerializer,
    RescheduleRequestCreateSerializer,
    RescheduleRequestSerializer,
    RescheduleRespondSerializer,
)
from bookings.services import BookingService
from core.exceptions import BaseApplicationError
from core.views import error_response

ERROR_RESPONSES = {
    400: OpenApiResponse(description="Invalid request or booking state"),
    403: OpenApiResponse(description="Not allowed for this user"),
    404: OpenApiResponse(description="Booking not found"),
    409: OpenApiResponse(description="Booking changed concurrently or escrow already settled"),
}


class BookingCreateView(APIView):
    """
    Create a booking.

    POST /api/v1/bookings/

    Response:
        201 Created: Booking plus the Stripe client_secret for payment
        400 Bad Request: Validation error (location, address, availability)
        403 Forbidden: Not an active, verified client
        502 Bad Gateway: Payment provider failure (nothing persisted)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_create",
        summary="Create booking",
        description=(
            "Validate the slot, snapshot the price and open a payment intent "
            "for the total. The booking stays pending until the freelancer "
            "accepts or the response window expires."
        ),
        request=BookingCreateSerializer,
        responses={
            201: OpenApiResponse(description="Booking created with client_secret"),
            **ERROR_RESPONSES,
            502: OpenApiResponse(description="Payment provider failure"),
        },
        tags=["Bookings"],
    )
    def post(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = BookingService.create_booking(client=request.user, **serializer.validated_data)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            {
                "booking": BookingSerializer(result.booking).data,
                "payment_id": str(result.payment.id),
                "client_secret": result.client_secret,
                "price": result.price.to_dict(),
            },
            status=status.HTTP_201_CREATED,
        )


class BookingDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_retrieve",
        summary="Get booking",
        responses={200: BookingSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def get(self, request, pk):
        try:
            booking = BookingService.get_booking(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)

        data = BookingSerializer(booking).data
        data["audit_log"] = BookingAuditLogSerializer(booking.audit_logs.all(), many=True).data
        return Response(data)


class BookingAcceptView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_accept",
        summary="Accept booking",
        request=None,
        responses={200: BookingSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        try:
            booking = BookingService.accept(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(BookingSerializer(booking).data)


class BookingDeclineView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_decline",
        summary="Decline booking",
        description="Freelancer declines a pending request. Any payment is refunded in full.",
        request=ReasonSerializer,
        responses={200: BookingSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking = BookingService.decline(request.user, pk, reason=serializer.validated_data["reason"])
        except BaseApplicationError as e:
            return error_response(e)
        return Response(BookingSerializer(booking).data)


class BookingCancelView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_cancel",
        summary="Cancel booking",
        description=(
            "Either party cancels a pending or confirmed booking. Clients are "
            "refunded per the cancellation policy; freelancer cancellations "
            "are always refunded in full."
        ),
        request=ReasonSerializer,
        responses={200: CancellationSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = BookingService.cancel(request.user, pk, reason=serializer.validated_data["reason"])
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            {
                "booking": BookingSerializer(result.booking).data,
                **result.refund.to_dict(),
                "refund_issued_pence": result.refund_issued_pence,
                "released_pence": result.released_pence,
                "reliability": result.reliability.to_dict() if result.reliability else None,
            }
        )


class BookingConfirmView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_confirm",
        summary="Confirm service",
        description="Client or admin confirms the service; escrow is released and a payout created.",
        request=None,
        responses={200: BookingSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        try:
            booking = BookingService.confirm_service(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(BookingSerializer(booking).data)


class BookingCheckoutView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_checkout",
        summary="Get or re-issue payment intent",
        request=None,
        responses={200: CheckoutSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        try:
            payment = BookingService.checkout(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(
            {
                "payment_id": str(payment.id),
                "client_secret": payment.client_secret,
                "amount_pence": payment.amount_pence,
            }
        )


class BookingRefundView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_refund",
        summary="Refund booking payment",
        description="Refund a paid booking's held escrow, in full or in part. The booking status is unchanged.",
        request=RefundRequestSerializer,
        responses={200: OpenApiResponse(description="Refund issued"), **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = BookingService.request_refund(
                request.user,
                pk,
                amount_pence=serializer.validated_data.get("amount_pence"),
                reason=serializer.validated_data["reason"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        return Response(
            {
                "refund_id": outcome.refund_id,
                "refund_amount_pence": outcome.refund_amount_pence,
                "escrow_status": outcome.payment.escrow_status,
            }
        )


class BookingPaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_payment_status",
        summary="Get payment status",
        responses={200: OpenApiResponse(description="Payment and escrow status"), **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def get(self, request, pk):
        try:
            data = BookingService.payment_status(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(data)


# =============================================================================
# Rescheduling
# =============================================================================


class BookingRescheduleView(APIView):
    """
    Reschedule requests for one booking.

    GET  /api/v1/bookings/{id}/reschedule/  - Request history (parties, admins)
    POST /api/v1/bookings/{id}/reschedule/  - Propose a new start time (parties)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_reschedule_list",
        summary="List reschedule requests",
        responses={200: RescheduleRequestSerializer(many=True), **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def get(self, request, pk):
        try:
            requests = BookingService.list_reschedule_requests(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(RescheduleRequestSerializer(requests, many=True).data)

    @extend_schema(
        operation_id="bookings_reschedule_create",
        summary="Request reschedule",
        description=(
            "Propose a new start time; the duration is kept. Not allowed within "
            "24 hours of the current start or while another request is pending."
        ),
        request=RescheduleRequestCreateSerializer,
        responses={201: RescheduleRequestSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        serializer = RescheduleRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            reschedule = BookingService.request_reschedule(request.user, pk, **serializer.validated_data)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(RescheduleRequestSerializer(reschedule).data, status=status.HTTP_201_CREATED)


class PendingRescheduleListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_reschedule_pending",
        summary="Reschedule requests awaiting my answer",
        responses={200: RescheduleRequestSerializer(many=True)},
        tags=["Bookings"],
    )
    def get(self, request):
        requests = BookingService.pending_reschedule_requests(request.user)
        return Response(RescheduleRequestSerializer(requests, many=True).data)


class RescheduleRespondView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="bookings_reschedule_respond",
        summary="Answer reschedule request",
        description=(
            "The other party accepts, declines or suggests an alternative time. "
            "A suggestion returns the new pending request."
        ),
        request=RescheduleRespondSerializer,
        responses={200: RescheduleRequestSerializer, **ERROR_RESPONSES},
        tags=["Bookings"],
    )
    def post(self, request, pk):
        serializer = RescheduleRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            reschedule = BookingService.respond_reschedule(request.user, pk, **serializer.validated_data)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(RescheduleRequestSerializer(reschedule).data)
