# messaging/urls.py
"""
URL configuration for the messaging app.

Defines REST endpoints for messages, conversations with another user and
the retention policy. These routes are included under the
``/api/messaging/`` prefix at the project level.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import CommunicationDetailsView, ConversationView, MessageViewSet, RetentionViewSet

app_name = "messaging"

router = DefaultRouter()
router.register(r"messages", MessageViewSet, basename="message")
router.register(r"retention", RetentionViewSet, basename="retention")

urlpatterns = [
    # router routes (send / send media / delete, retention admin)
    path("", include(router.urls)),

    # newest-first history with another user
    path(
        "conversations/<int:other_user_id>/",
        ConversationView.as_view(),
        name="conversation",
    ),
    path(
        "communication/<int:other_user_id>/",
        CommunicationDetailsView.as_view(),
        name="communication-details",
    ),
]
