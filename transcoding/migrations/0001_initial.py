from django.db import migrations, models


def _record_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        ("processed_video_bucket", models.CharField(blank=True, default="", max_length=255)),
        ("processed_mp4_storage_path", models.CharField(blank=True, db_index=True, default="", max_length=512)),
        ("video_processed", models.BooleanField(default=False)),
        ("video_processed_at", models.DateTimeField(blank=True, null=True)),
        ("hls_url", models.TextField(blank=True, default="")),
        ("hls_processed", models.BooleanField(default=False)),
        ("hls_processed_at", models.DateTimeField(blank=True, null=True)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Post",
            fields=_record_fields() + [
                ("author_id", models.CharField(blank=True, default="", max_length=128)),
                ("content", models.TextField(blank=True, default="")),
                ("video_storage_bucket", models.CharField(blank=True, default="", max_length=255)),
                ("video_storage_path", models.CharField(blank=True, db_index=True, default="", max_length=512)),
                ("video_url", models.TextField(blank=True, default="")),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="MediaItem",
            fields=_record_fields() + [
                ("owner_id", models.CharField(blank=True, default="", max_length=128)),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("media_storage_bucket", models.CharField(blank=True, default="", max_length=255)),
                ("media_storage_path", models.CharField(blank=True, db_index=True, default="", max_length=512)),
                ("media_url", models.TextField(blank=True, default="")),
            ],
            options={"abstract": False},
        ),
    ]
