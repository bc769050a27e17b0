"""
URL configuration for the booking platform.

URL Structure:
    /                                  - ReDoc API documentation
    /admin/                            - Django admin interface
    /health/                           - Health check endpoint
    /schema/                           - OpenAPI schema (YAML)
    /api/v1/auth/token/                - Obtain JWT pair
    /api/v1/auth/token/refresh/        - Refresh JWT
    /api/v1/bookings/                  - Create booking (POST)
        {id}/                          - Booking detail
        {id}/accept/                   - Freelancer accepts
        {id}/decline/                  - Freelancer declines (full refund)
        {id}/cancel/                   - Either party cancels (policy refund)
        {id}/confirm/                  - Client/admin confirms service, releases escrow
        {id}/checkout/                 - Re-issue payment intent
        {id}/refund/                   - Client/admin refund request
        {id}/payment/                  - Payment status
    /api/v1/disputes/                  - Raise a dispute (POST)
        {id}/review/                   - Admin moves dispute to review
        {id}/resolve/                  - Admin resolves dispute
    /api/v1/payments/                  - Payment endpoints
        webhooks/stripe/               - Stripe webhook endpoint (POST)
        payouts/{id}/override/         - Admin payout status override
        payouts/{id}/process/          - Admin immediate transfer
        payouts/{id}/retry/            - Admin re-queue of a failed payout
    /api/v1/notifications/             - Current user's notifications

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("bookings/", include("bookings.urls")),
    path("disputes/", include("disputes.urls")),
    path("payments/", include("payments.urls")),
    path("notifications/", include("notifications.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Bookings Admin"
admin.site.site_title = "Bookings Admin Portal"
admin.site.index_title = "Bookings, payments and disputes"
