# users/management/commands/seed_users.py

from __future__ import annotations

from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from permissions.roles import (
    ROLE_ACCOUNTS,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_SALES,
    ROLE_WAREHOUSE,
)


@dataclass(frozen=True)
class SeedUserSpec:
    label: str
    role: str
    email: str
    first_name: str = ""
    last_name: str = ""


SEED_USERS = [
    SeedUserSpec("Admin", ROLE_ADMIN, "admin@example.com", "System", "Admin"),
    SeedUserSpec("Manager", ROLE_MANAGER, "manager@example.com", "Branch", "Manager"),
    SeedUserSpec("Warehouse", ROLE_WAREHOUSE, "warehouse@example.com", "Gudang", "Staff"),
    SeedUserSpec("Sales", ROLE_SALES, "sales@example.com", "Sales", "Staff"),
    SeedUserSpec("Accounts", ROLE_ACCOUNTS, "accounts@example.com", "Finance", "Staff"),
]


class Command(BaseCommand):
    help = "Seed one staff user per role."

    def add_arguments(self, parser):
        parser.add_argument(
            "--password",
            type=str,
            default="Pass1234!",
            help="Password for seeded users (default: Pass1234!)",
        )
        parser.add_argument(
            "--force-password",
            action="store_true",
            help="Reset password for existing seeded users too.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        password = options.get("password") or ""
        force_password = bool(options.get("force_password"))

        if len(password) < 6:
            raise CommandError("--password must be at least 6 characters.")

        User = get_user_model()
        created_count = 0

        for spec in SEED_USERS:
            is_admin = spec.role == ROLE_ADMIN
            user, created = User.objects.get_or_create(
                email=spec.email,
                defaults={
                    "username": spec.email.split("@")[0],
                    "role": spec.role,
                    "first_name": spec.first_name,
                    "last_name": spec.last_name,
                    "is_staff": True,
                    "is_superuser": is_admin,
                },
            )

            if created or force_password:
                user.set_password(password)
                user.save(update_fields=["password"])

            if user.role != spec.role:
                user.role = spec.role
                user.save(update_fields=["role"])

            if created:
                created_count += 1
                self.stdout.write(f"created: {spec.label} ({spec.role}) -> {spec.email}")
            else:
                self.stdout.write(f"exists:  {spec.label} ({spec.role}) -> {spec.email}")

        self.stdout.write(f"\nCreated: {created_count}")
