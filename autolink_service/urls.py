"""Root URL configuration for autolink_service."""

from django.urls import include, path

urlpatterns = [
    path('', include('autolinker.urls')),
]
