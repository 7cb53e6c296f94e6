"""
Login and session URLs.
"""
from django.urls import path
from apps.session_security.views import (
    LoginView,
    SessionRefreshView,
    SessionValidateView,
)

app_name = 'session_security'

urlpatterns = [
    path('auth/login', LoginView.as_view(), name='login'),
    path('session/validate', SessionValidateView.as_view(), name='session-validate'),
    path('session/refresh', SessionRefreshView.as_view(), name='session-refresh'),
]
