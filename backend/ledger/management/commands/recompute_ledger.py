# ledger/management/commands/recompute_ledger.py
"""
Management command to verify and recompute ledger aggregates.

Payments are the source of truth; every derived total can be rebuilt
from them at any time.

Usage:
    # Recompute one organization
    python manage.py recompute_ledger --organization 3

    # Recompute every organization
    python manage.py recompute_ledger --all-organizations

    # Only report mismatches, write nothing
    python manage.py recompute_ledger --all-organizations --verify-only
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from accounts.models import Organization
from accounts.rls import rls_bypass
from ledger.engine import get_engine
from ledger.errors import ConsistencyViolation
from ledger.verification import recompute_organization, verify_ledger

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Verify and recompute derived ledger totals."""

    help = "Recompute project, assignment and expense totals from payments"

    def add_arguments(self, parser):
        parser.add_argument(
            "--organization",
            type=int,
            help="ID of the organization to recompute",
        )
        parser.add_argument(
            "--all-organizations",
            action="store_true",
            help="Recompute every organization",
        )
        parser.add_argument(
            "--verify-only",
            action="store_true",
            help="Report mismatches without writing",
        )

    def handle(self, *args, **options):
        has_one = options["organization"] is not None
        has_all = options["all_organizations"]

        if has_one == has_all:
            raise CommandError(
                "Specify exactly one of --organization <id> or --all-organizations"
            )

        with rls_bypass():
            organizations = Organization.objects.order_by("pk")
            if has_one:
                organizations = organizations.filter(pk=options["organization"])
            organizations = list(organizations)

            if not organizations:
                raise CommandError("No organizations to recompute.")

            total_mismatches = 0
            for organization in organizations:
                total_mismatches += self._process(organization, options["verify_only"])

        if options["verify_only"] and total_mismatches:
            raise CommandError(f"{total_mismatches} mismatched aggregate(s) found.")

        summary = f"\nDone: {len(organizations)} organization(s), {total_mismatches} mismatch(es)"
        if not options["verify_only"]:
            summary += " fixed"
        self.stdout.write(self.style.SUCCESS(summary))

    def _process(self, organization, verify_only: bool) -> int:
        self.stdout.write(f"\n{organization.name} (id={organization.pk})")

        if verify_only:
            report = verify_ledger(organization)
        else:
            try:
                report = recompute_organization(get_engine(), organization)
            except ConsistencyViolation as exc:
                logger.error("Recompute aborted for organization %s: %s", organization.pk, exc)
                raise CommandError(str(exc))

        for mismatch in report["mismatches"]:
            self.stdout.write(
                self.style.WARNING(
                    f"  {mismatch['target']} {mismatch['id']}: "
                    f"stored {mismatch['stored']}, expected {mismatch['expected']}"
                )
            )

        self.stdout.write(
            f"  checked {report['checked']}, mismatches {len(report['mismatches'])}"
        )
        return len(report["mismatches"])
