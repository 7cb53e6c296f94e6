"""
Security audit API URLs.
"""
from django.urls import path
from apps.core.views_security import SecurityEventListView, SecuritySummaryView

app_name = 'security'

urlpatterns = [
    path('events', SecurityEventListView.as_view(), name='security-events'),
    path('summary', SecuritySummaryView.as_view(), name='security-summary'),
]
