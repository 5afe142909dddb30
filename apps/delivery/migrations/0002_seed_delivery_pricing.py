from django.db import migrations


def seed_pricing(apps, schema_editor):
    DeliveryPricing = apps.get_model("delivery", "DeliveryPricing")
    DeliveryPricing.objects.get_or_create(pk=1)


class Migration(migrations.Migration):
    dependencies = [
        ("delivery", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_pricing, migrations.RunPython.noop),
    ]
