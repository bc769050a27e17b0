"""
API views for disputes.

Endpoints:
    POST /api/v1/disputes/                - Client raises a dispute
    POST /api/v1/disputes/{id}/review/    - Admin moves dispute to in_review
    POST /api/v1/disputes/{id}/resolve/   - Admin resolves dispute
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from disputes.serializers import (
    DisputeCreateSerializer,
    DisputeResolveSerializer,
    DisputeSerializer,
)
from disputes.services import DisputeService


class DisputeCreateView(APIView):
    """
    Raise a dispute on a booking.

    POST /api/v1/disputes/

    Response:
        201 Created: Dispute created; auto-confirm is suspended for the booking
        400 Bad Request: Wrong booking state or dispute window closed
        403 Forbidden: Not the booking's client
        409 Conflict: Booking already has a dispute
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="disputes_create",
        summary="Raise dispute",
        request=DisputeCreateSerializer,
        responses={
            201: DisputeSerializer,
            400: OpenApiResponse(description="Validation error"),
            403: OpenApiResponse(description="Not the booking's client"),
            404: OpenApiResponse(description="Booking not found"),
            409: OpenApiResponse(description="Dispute already exists"),
        },
        tags=["Disputes"],
    )
    def post(self, request):
        serializer = DisputeCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            dispute = DisputeService.create_dispute(
                request.user,
                serializer.validated_data["booking_id"],
                category=serializer.validated_data["category"],
                description=serializer.validated_data["description"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


class DisputeReviewView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="disputes_review",
        summary="Mark dispute in review",
        request=None,
        responses={
            200: DisputeSerializer,
            400: OpenApiResponse(description="Dispute is not new"),
            403: OpenApiResponse(description="Admin access required"),
            404: OpenApiResponse(description="Dispute not found"),
        },
        tags=["Disputes"],
    )
    def post(self, request, pk):
        try:
            dispute = DisputeService.mark_in_review(request.user, pk)
        except BaseApplicationError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)


class DisputeResolveView(APIView):
    """
    Resolve a dispute.

    POST /api/v1/disputes/{id}/resolve/

    Response:
        200 OK: Dispute resolved (also when the escrow had already been settled)
        400 Bad Request: Already resolved or invalid resolution
        403 Forbidden: Admin access required
        502 Bad Gateway: Refund failed at the provider; nothing was changed
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="disputes_resolve",
        summary="Resolve dispute",
        request=DisputeResolveSerializer,
        responses={
            200: DisputeSerializer,
            400: OpenApiResponse(description="Validation error"),
            403: OpenApiResponse(description="Admin access required"),
            404: OpenApiResponse(description="Dispute or payment not found"),
            502: OpenApiResponse(description="Payment provider failure"),
        },
        tags=["Disputes"],
    )
    def post(self, request, pk):
        serializer = DisputeResolveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            dispute = DisputeService.resolve_dispute(
                request.user,
                pk,
                resolution_type=data["resolution_type"],
                amount_pence=data.get("amount_pence"),
                notes=data["notes"],
                suspend_user_id=data.get("suspend_user_id"),
            )
        except BaseApplicationError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)
