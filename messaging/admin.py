# messaging/admin.py
from django.contrib import admin
from .models import CommunicationRelation, Message


class HasMediaFilter(admin.SimpleListFilter):
    title = "Media"
    parameter_name = "media"

    def lookups(self, request, model_admin):
        return (("yes", "With media"), ("no", "Text only"))

    def queryset(self, request, qs):
        v = self.value()
        if v == "yes":
            return qs.filter(media_path__isnull=False).exclude(media_path="")
        if v == "no":
            return qs.filter(media_path__isnull=True) | qs.filter(media_path="")
        return qs


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "sender", "receiver", "message_type", "media_path", "created_at")
    list_filter = ("message_type", HasMediaFilter, "created_at")
    search_fields = ("sender__username", "receiver__username", "text_content")
    ordering = ("-created_at",)
    readonly_fields = ("user_low", "user_high")


@admin.register(CommunicationRelation)
class CommunicationRelationAdmin(admin.ModelAdmin):
    list_display = ("id", "user1", "user2", "can_communicate", "established_at", "updated_at")
    list_filter = ("can_communicate",)
    search_fields = ("user1__username", "user2__username")
    ordering = ("-updated_at",)
