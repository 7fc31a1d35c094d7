"""
PostgreSQL Row-Level Security (RLS) session parameters.

Tenant tables carry a policy of the form

    current_setting('app.rls_bypass', true) = 'on'
    OR organization_id = NULLIF(current_setting('app.current_organization_id', true), '')::bigint

(see accounts/migrations/0002_enable_rls.py). The policy compares against a
session parameter and never sub-selects from the membership table, so
evaluating it cannot recurse into itself.

The parameter is filled in by the access gate *after* the membership
resolver has answered through its privileged path (``rls_bypass()``), which
is the only place membership rows are read without a tenant filter.

Parameters:
- app.current_organization_id: the resolved organization of the actor
- app.rls_bypass: "on" to bypass the policies (resolver, tests, commands
  that explicitly receive the organization)

On non-PostgreSQL databases (SQLite in tests) every function is a no-op
and queries rely on the ORM-level organization filters alone.
"""
from contextlib import contextmanager
from typing import Optional

from django.db import connection as default_connection


ORGANIZATION_PARAM = "app.current_organization_id"
BYPASS_PARAM = "app.rls_bypass"


def _set_config(name: str, value: Optional[str], *, conn=None) -> None:
    conn = conn or default_connection
    if conn.vendor != "postgresql":
        return

    with conn.cursor() as cursor:
        if value is None:
            cursor.execute(f"RESET {name}")
        else:
            cursor.execute("SELECT set_config(%s, %s, false)", [name, value])


def _get_config(name: str, *, conn=None) -> Optional[str]:
    conn = conn or default_connection
    if conn.vendor != "postgresql":
        return None

    with conn.cursor() as cursor:
        cursor.execute("SELECT current_setting(%s, true)", [name])
        row = cursor.fetchone()
    return row[0] if row else None


def set_current_organization_id(organization_id: Optional[int], *, conn=None) -> None:
    """Set (or clear, with None) the organization RLS policies filter on."""
    if organization_id is None:
        _set_config(ORGANIZATION_PARAM, None, conn=conn)
        return
    _set_config(ORGANIZATION_PARAM, str(organization_id), conn=conn)


def set_rls_bypass(enabled: bool, *, conn=None) -> None:
    _set_config(BYPASS_PARAM, "on" if enabled else "off", conn=conn)


@contextmanager
def rls_bypass(*, conn=None):
    """
    Temporarily bypass RLS, restoring the previous state on exit.

    Usage:
        with rls_bypass():
            row = Membership.objects.filter(user_id=uid).first()
    """
    previous = _get_config(BYPASS_PARAM, conn=conn)
    set_rls_bypass(True, conn=conn)
    try:
        yield
    finally:
        _set_config(BYPASS_PARAM, previous or None, conn=conn)


def clear_rls_context(*, conn=None) -> None:
    """Reset all RLS parameters; called in the gate's finally block."""
    _set_config(ORGANIZATION_PARAM, None, conn=conn)
    _set_config(BYPASS_PARAM, None, conn=conn)
