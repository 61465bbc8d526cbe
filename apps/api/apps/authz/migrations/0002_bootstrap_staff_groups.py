# Staff group bootstrap (StoreManager, Pharmacist, Cashier)

from django.db import migrations

STAFF_GROUPS = ('StoreManager', 'Pharmacist', 'Cashier')


def create_staff_groups(apps, schema_editor):
    """
    Create staff groups if they don't exist.
    Idempotent - safe to run multiple times.
    """
    Group = apps.get_model('auth', 'Group')
    for name in STAFF_GROUPS:
        Group.objects.get_or_create(name=name)


def remove_staff_groups(apps, schema_editor):
    """
    Reverse migration - delete staff groups nobody is assigned to.
    """
    Group = apps.get_model('auth', 'Group')
    Group.objects.filter(name__in=STAFF_GROUPS, user__isnull=True).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('authz', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(
            create_staff_groups,
            remove_staff_groups
        ),
    ]
