"""
Initial migration for the messaging app.

Defines the Message and CommunicationRelation models with the pair
constraints and the index used for ordered per-conversation lookups.
"""
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_low", models.BigIntegerField(editable=False)),
                ("user_high", models.BigIntegerField(editable=False)),
                ("message_type", models.CharField(
                    choices=[("TEXT", "Text"), ("IMAGE", "Image"), ("VOICE", "Voice")],
                    default="TEXT",
                    max_length=8,
                )),
                ("text_content", models.TextField(blank=True, null=True)),
                ("media_path", models.CharField(blank=True, max_length=512, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("sender", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="sent_messages",
                    to=settings.AUTH_USER_MODEL,
                )),
                ("receiver", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="received_messages",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.AddConstraint(
            model_name="message",
            constraint=models.CheckConstraint(
                condition=models.Q(("sender", models.F("receiver")), _negated=True),
                name="message_no_self",
            ),
        ),
        migrations.AddIndex(
            model_name="message",
            index=models.Index(
                fields=["user_low", "user_high", "created_at", "id"],
                name="message_pair_created_idx",
            ),
        ),
        migrations.AddIndex(
            model_name="message",
            index=models.Index(fields=["sender", "receiver"], name="message_direction_idx"),
        ),
        migrations.CreateModel(
            name="CommunicationRelation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("can_communicate", models.BooleanField(default=True)),
                ("established_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user1", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="communication_as_user1",
                    to=settings.AUTH_USER_MODEL,
                )),
                ("user2", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="communication_as_user2",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
        ),
        migrations.AddConstraint(
            model_name="communicationrelation",
            constraint=models.CheckConstraint(
                condition=models.Q(("user1", models.F("user2")), _negated=True),
                name="communication_no_self",
            ),
        ),
        migrations.AddConstraint(
            model_name="communicationrelation",
            constraint=models.CheckConstraint(
                condition=models.Q(("user1__lt", models.F("user2"))),
                name="communication_user1_lt_user2",
            ),
        ),
        migrations.AddConstraint(
            model_name="communicationrelation",
            constraint=models.UniqueConstraint(
                fields=("user1", "user2"), name="uniq_communication_pair"
            ),
        ),
    ]
