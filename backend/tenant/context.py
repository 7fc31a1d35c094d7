"""
Request-scoped tenant context using contextvars.

The access gate opens a request scope for every request it handles.
Inside that scope:

- the tenant context (who is acting, in which organization, with which
  role) is available to logging, RLS setup and views;
- membership lookups are memoized in a per-request dict.

Nothing here outlives the request: the scope resets both variables on
exit, so a role change is visible on the very next request.

Usage:
    with request_scope():
        set_tenant_context(account_id=7, organization_id=3, role="admin")
        ...
        info = get_cached_membership(7, loader)

contextvars rather than threading.local() keeps this correct for async
views under ASGI as well.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Dict, NamedTuple, Optional


class TenantContext(NamedTuple):
    """Immutable tenant context for a request."""

    account_id: int
    organization_id: Optional[int]
    role: Optional[str]


_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar(
    "current_tenant",
    default=None,
)

# None means "no request scope open": lookups are not memoized at all.
_membership_cache: ContextVar[Optional[Dict[int, object]]] = ContextVar(
    "membership_cache",
    default=None,
)

_MISSING = object()


def get_current_tenant() -> Optional[TenantContext]:
    """Return the tenant context, or None outside a resolved request."""
    return _current_tenant.get()


def set_tenant_context(
    account_id: int,
    organization_id: Optional[int],
    role: Optional[str],
) -> None:
    """
    Set the tenant context for the current request.

    Called by the access gate middleware after identity and membership
    resolution.
    """
    _current_tenant.set(
        TenantContext(
            account_id=account_id,
            organization_id=organization_id,
            role=role,
        )
    )


def clear_tenant_context() -> None:
    _current_tenant.set(None)


def get_cached_membership(account_id: int, loader: Callable[[int], object]):
    """
    Return the membership for ``account_id``, loading it at most once per
    request scope.

    Outside a request scope every call goes straight to ``loader``.
    A ``None`` result (no tenant) is cached like any other.
    """
    cache = _membership_cache.get()
    if cache is None:
        return loader(account_id)

    value = cache.get(account_id, _MISSING)
    if value is _MISSING:
        value = loader(account_id)
        cache[account_id] = value
    return value


@contextmanager
def request_scope():
    """
    Open a fresh request scope.

    Both the membership cache and the tenant context are reset on exit,
    even if the request raised.
    """
    cache_token = _membership_cache.set({})
    tenant_token = _current_tenant.set(None)
    try:
        yield
    finally:
        _current_tenant.reset(tenant_token)
        _membership_cache.reset(cache_token)
