"""
Management command to bootstrap a fresh deployment.

Creates the staff groups, a default store and the platform superuser.
Idempotent - safe to run on every container start.
"""
import os

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.authz.models import StaffGroups
from apps.core.models import Store


class Command(BaseCommand):
    help = 'Create staff groups, a default store and the superuser if missing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--store-name',
            default=os.environ.get('DEFAULT_STORE_NAME', 'Main Pharmacy'),
            help='Name of the default store to create'
        )

    def handle(self, *args, **options):
        User = get_user_model()

        for name in StaffGroups.ALL:
            _, created = Group.objects.get_or_create(name=name)
            if created:
                self.stdout.write(self.style.SUCCESS(f'Group "{name}" created'))

        store, created = Store.objects.get_or_create(name=options['store_name'])
        if created:
            self.stdout.write(self.style.SUCCESS(f'Store "{store.name}" created'))

        email = os.environ.get('DJANGO_SUPERUSER_EMAIL', 'admin@example.com')
        password = os.environ.get('DJANGO_SUPERUSER_PASSWORD', 'admin123dev')

        if not User.objects.filter(email=email).exists():
            User.objects.create_superuser(email=email, password=password)
            self.stdout.write(
                self.style.SUCCESS(f'Superuser "{email}" created successfully')
            )
        else:
            self.stdout.write(
                self.style.WARNING(f'Superuser "{email}" already exists')
            )
