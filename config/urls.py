"""
URL configuration for PerfHub.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    # API Documentation
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('schema/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # API v1
    path('v1/', include('apps.core.urls')),  # Health

    # Login and session endpoints
    path('v1/', include('apps.session_security.urls')),  # auth/login, session/validate, session/refresh

    # Access control endpoints
    path('v1/access/', include('apps.rbac.urls')),  # me, routes, roles/assign, roles/bulk-assign

    # Security audit endpoints
    path('v1/security/', include('apps.core.urls_security')),  # events, summary
]
