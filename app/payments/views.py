"""
API views for payouts.

Endpoints:
    POST /api/v1/payments/payouts/{id}/override/  - Force a payout status
    POST /api/v1/payments/payouts/{id}/process/   - Transfer a payout now
    POST /api/v1/payments/payouts/{id}/retry/     - Re-queue a failed payout

All endpoints are admin-only; PayoutService enforces the role so the
same checks hold outside the API. The Stripe webhook endpoint lives in
payments.webhooks.views.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from payments.serializers import PayoutOverrideSerializer, PayoutSerializer
from payments.services import PayoutService

ERROR_RESPONSES = {
    403: OpenApiResponse(description="Admin access required"),
    404: OpenApiResponse(description="Payout not found"),
}


class PayoutOverrideView(APIView):
    """
    Force a payout into any status.

    POST /api/v1/payments/payouts/{id}/override/

    Request body:
        {"status": "paid", "notes": "Paid by bank transfer"}

    Response:
        200 OK: Updated payout with audit trail
        400 Bad Request: Unknown status
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="payouts_override",
        summary="Override payout status",
        request=PayoutOverrideSerializer,
        responses={
            200: PayoutSerializer,
            400: OpenApiResponse(description="Unknown status"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, pk):
        serializer = PayoutOverrideSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            payout = PayoutService.admin_override(
                request.user,
                pk,
                status=serializer.validated_data["status"],
                notes=serializer.validated_data["notes"],
            )
        except BaseApplicationError as e:
            return error_response(e)
        return Response(PayoutSerializer(payout).data)


class PayoutProcessView(APIView):
    """
    Transfer a payout immediately, ignoring its scheduled date.

    POST /api/v1/payments/payouts/{id}/process/

    Response:
        200 OK: Payout paid
        409 Conflict: Payout not pending/scheduled or account not ready
        502 Bad Gateway: Transfer failed; payout is now failed
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="payouts_process",
        summary="Process payout now",
        request=None,
        responses={
            200: PayoutSerializer,
            409: OpenApiResponse(description="Payout cannot be processed"),
            502: OpenApiResponse(description="Transfer failed"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, pk):
        try:
            result = PayoutService.process_payout_now(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)

        if result.success:
            return Response(PayoutSerializer(result.data.payout).data)

        http_status = (
            status.HTTP_502_BAD_GATEWAY
            if result.error_code == "PAYOUT_FAILED"
            else status.HTTP_409_CONFLICT
        )
        return Response(
            {"error": result.error, "error_code": result.error_code},
            status=http_status,
        )


class PayoutRetryView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="payouts_retry",
        summary="Retry failed payout",
        request=None,
        responses={
            200: PayoutSerializer,
            409: OpenApiResponse(description="Payout is not failed"),
            **ERROR_RESPONSES,
        },
        tags=["Payouts"],
    )
    def post(self, request, pk):
        try:
            payout = PayoutService.retry_payout(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(PayoutSerializer(payout).data)
