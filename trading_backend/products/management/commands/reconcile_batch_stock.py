# products/management/commands/reconcile_batch_stock.py

"""
RECONCILE BATCH STOCK (LEDGER AUDIT)

Purpose:
- Compare every batch's cached figures with their sources of truth:
    current_stock  vs SUM(InventoryTransaction.quantity)
    reserved_stock vs SUM(active StockReservation.reserved_quantity)
- Report drift; with --fix, re-derive the cached figures through the
  ledger / reservation services.

Rules:
- Read-only unless --fix is given.
- A batch whose active holds exceed its ledger balance cannot be fixed
  automatically; it is reported and skipped.
- Idempotent: rerunning after a fix reports nothing.
"""

from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Q, Sum

from products.models import Batch
from products.services.exceptions import InsufficientStockError
from products.services.inventory import ledger_balance, recompute_current_stock
from products.services.quantities import ZERO
from sales.services.reservations import active_reserved_total, recompute_reserved_stock


class Command(BaseCommand):
    help = "Report (and optionally repair) batches whose cached stock drifted from the ledger."

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Re-derive drifted current_stock / reserved_stock.",
        )
        parser.add_argument(
            "--batch",
            type=str,
            default="",
            help="Only check this batch number.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=0,
            help="Limit the number of batches to check (0 = no limit).",
        )

    def handle(self, *args, **options):
        fix = bool(options.get("fix"))
        batch_number = (options.get("batch") or "").strip()
        limit = int(options.get("limit") or 0)

        qs = Batch.objects.select_related("product").order_by("import_date", "id")
        if batch_number:
            qs = qs.filter(batch_number=batch_number)
        if limit > 0:
            qs = qs[:limit]

        if not fix:
            self.stdout.write("DRY RUN: pass --fix to repair drifted batches.\n")

        checked = drifted = fixed = failed = 0

        for batch in qs:
            checked += 1
            balance = ledger_balance(batch)
            held = active_reserved_total(batch)

            if balance == batch.current_stock and held == batch.reserved_stock:
                continue

            drifted += 1
            self.stdout.write(
                f"{batch.batch_number}: current_stock={batch.current_stock} ledger={balance} "
                f"reserved_stock={batch.reserved_stock} active_holds={held}"
            )

            if not fix:
                continue

            try:
                with transaction.atomic():
                    # Step order keeps reserved_stock <= current_stock after each write.
                    if held <= batch.current_stock:
                        recompute_reserved_stock(batch=batch)
                        recompute_current_stock(batch=batch)
                    else:
                        recompute_current_stock(batch=batch)
                        recompute_reserved_stock(batch=batch)
            except InsufficientStockError as exc:
                failed += 1
                self.stderr.write(f"  cannot fix {batch.batch_number}: {exc}")
                continue

            fixed += 1
            self.stdout.write(self.style.SUCCESS(f"  fixed {batch.batch_number}"))

        negative = Batch.objects.filter(Q(current_stock__lt=ZERO) | Q(reserved_stock__lt=ZERO)).count()
        total_stock = Batch.objects.aggregate(total=Sum("current_stock"))["total"] or ZERO

        self.stdout.write("")
        self.stdout.write(f"Checked: {checked}")
        self.stdout.write(f"Drifted: {drifted}")
        if fix:
            self.stdout.write(f"Fixed: {fixed}")
            self.stdout.write(f"Failed: {failed}")
        self.stdout.write(f"Negative figures: {negative}")
        self.stdout.write(f"Total on hand: {total_stock}")
