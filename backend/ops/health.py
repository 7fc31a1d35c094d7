"""
Health check endpoints for operations monitoring.

Endpoints:
- /_health/live    - liveness probe (is the process running?)
- /_health/ready   - readiness probe (can we reach the database?)
- /_health/full    - full report, including ledger consistency
"""
import logging
import time
from typing import Any, Dict

from django.conf import settings
from django.db import DatabaseError, connections
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


class HealthCheck:

    @staticmethod
    def check_database(alias: str = "default") -> Dict[str, Any]:
        start = time.time()
        try:
            conn = connections[alias]
            conn.ensure_connection()
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
        except DatabaseError as e:
            logger.error("Database %s unreachable: %s", alias, e)
            return {
                "status": "unhealthy",
                "alias": alias,
                "error": str(e),
                "duration_ms": round((time.time() - start) * 1000, 2),
            }
        return {
            "status": "healthy",
            "alias": alias,
            "duration_ms": round((time.time() - start) * 1000, 2),
        }

    @staticmethod
    def check_ledger() -> Dict[str, Any]:
        """
        Re-sum payments for every organization and compare with the stored
        totals. A mismatch means some write went around the ledger engine;
        run `manage.py recompute_ledger` to fix it.
        """
        from accounts.models import Organization
        from accounts.rls import rls_bypass
        from ledger.verification import verify_ledger

        start = time.time()
        checked = 0
        mismatched = []

        try:
            with rls_bypass():
                for organization_id in Organization.objects.values_list("pk", flat=True):
                    report = verify_ledger(organization_id)
                    checked += report["checked"]
                    if report["mismatches"]:
                        mismatched.append({
                            "organization_id": organization_id,
                            "mismatches": len(report["mismatches"]),
                        })
        except DatabaseError as e:
            return {"status": "error", "error": str(e)}

        if mismatched:
            logger.warning(
                "Ledger verification found mismatches in %d organization(s)",
                len(mismatched),
            )

        return {
            "status": "healthy" if not mismatched else "degraded",
            "checked": checked,
            "organizations_with_mismatches": mismatched[:10],
            "duration_ms": round((time.time() - start) * 1000, 2),
        }

    @staticmethod
    def get_full_health() -> Dict[str, Any]:
        checks = {
            "database": HealthCheck.check_database("default"),
            "ledger": HealthCheck.check_ledger(),
        }

        statuses = [c.get("status", "unknown") for c in checks.values()]
        if all(s == "healthy" for s in statuses):
            overall = "healthy"
        elif any(s in ("unhealthy", "error") for s in statuses):
            overall = "unhealthy"
        else:
            overall = "degraded"

        return {
            "status": overall,
            "checks": checks,
            "version": getattr(settings, "VERSION", "unknown"),
            "environment": "production" if not settings.DEBUG else "development",
        }


class LivenessView(View):
    """Returns 200 while the process is running. Checks nothing else."""

    def get(self, request):
        return JsonResponse({"status": "alive"})


class ReadinessView(View):

    def get(self, request):
        db_check = HealthCheck.check_database("default")
        if db_check["status"] == "healthy":
            return JsonResponse({"status": "ready", "database": db_check})
        return JsonResponse({"status": "not_ready", "database": db_check}, status=503)


class FullHealthView(View):
    """
    Full health report for dashboards. Keep it on the internal network:
    it walks every organization's ledger.
    """

    def get(self, request):
        health = HealthCheck.get_full_health()
        status_code = 200 if health["status"] == "healthy" else 503
        return JsonResponse(health, status=status_code)
