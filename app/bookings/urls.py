"""URL configuration for the bookings app."""

from django.urls import path

from bookings.views import (
    BookingAcceptView,
    BookingCancelView,
    BookingCheckoutView,
    BookingConfirmView,
    BookingCreateView,
    BookingDeclineView,
    BookingDetailView,
    BookingPaymentStatusView,
    BookingRefundView,
    BookingRescheduleView,
    PendingRescheduleListView,
    RescheduleRespondView,
)

app_name = "bookings"

urlpatterns = [
    path("", BookingCreateView.as_view(), name="create"),
    path("<uuid:pk>/", BookingDetailView.as_view(), name="detail"),
    path("<uuid:pk>/accept/", BookingAcceptView.as_view(), name="accept"),
    path("<uuid:pk>/decline/", BookingDeclineView.as_view(), name="decline"),
    path("<uuid:pk>/cancel/", BookingCancelView.as_view(), name="cancel"),
    path("<uuid:pk>/confirm/", BookingConfirmView.as_view(), name="confirm"),
    path("<uuid:pk>/checkout/", BookingCheckoutView.as_view(), name="checkout"),
    path("<uuid:pk>/refund/", BookingRefundView.as_view(), name="refund"),
    path("<uuid:pk>/payment/", BookingPaymentStatusView.as_view(), name="payment"),
    path("<uuid:pk>/reschedule/", BookingRescheduleView.as_view(), name="reschedule"),
    path("reschedule-requests/", PendingRescheduleListView.as_view(), name="reschedule-pending"),
    path(
        "reschedule-requests/<uuid:pk>/respond/",
        RescheduleRespondView.as_view(),
        name="reschedule-respond",
    ),
]
