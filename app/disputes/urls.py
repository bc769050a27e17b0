"""URL configuration for the disputes app."""

from django.urls import path

from disputes.views import DisputeCreateView, DisputeResolveView, DisputeReviewView

app_name = "disputes"

urlpatterns = [
    path("", DisputeCreateView.as_view(), name="create"),
    path("<uuid:pk>/review/", DisputeReviewView.as_view(), name="review"),
    path("<uuid:pk>/resolve/", DisputeResolveView.as_view(), name="resolve"),
]
