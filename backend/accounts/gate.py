"""
Route/access gate decision.

decide(account_kind, has_membership, path) says whether a page request
goes through, is sent somewhere else, or is refused. It is a pure
function of its arguments. gate(request) resolves identity and membership
and then calls it.

Areas are matched by path segment, so "/team" covers "/team" and
"/team/7" but not "/team-dashboard".
"""
from dataclasses import dataclass
from typing import Optional, Union

from accounts.models import User


OWNER_LOGIN = "/login"
OWNER_SIGNUP = "/signup"
TEAM_LOGIN = "/team-login"

OWNER_HOME = "/dashboard"
TEAM_HOME = "/team-dashboard"

OWNER_AREA = (
    "/dashboard",
    "/clients",
    "/meetings",
    "/settings",
    "/team",
    "/expenses",
    "/projects",
    "/tasks",
)
TEAM_AREA = (
    "/team-dashboard",
    "/teammate",
)
OWNER_ENTRY = (OWNER_LOGIN, OWNER_SIGNUP)
TEAM_ENTRY = (TEAM_LOGIN,)

# Owner-area prefix -> team-area equivalent. Anything else lands on TEAM_HOME.
OWNER_TO_TEAM = {
    "/projects": "/teammate/projects",
    "/tasks": "/teammate/tasks",
    "/team": "/teammate/team",
}
TEAM_TO_OWNER = {team: owner for owner, team in OWNER_TO_TEAM.items()}


class Area:
    PUBLIC = "public"
    OWNER = "owner_area"
    TEAM = "team_area"
    OWNER_ENTRY = "owner_entry"
    TEAM_ENTRY = "team_entry"


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class Redirect:
    target: str
    reason: str


@dataclass(frozen=True)
class Deny:
    reason: str


PROCEED = Proceed()

GateDecision = Union[Proceed, Redirect, Deny]


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def _match(path: str, prefixes) -> Optional[str]:
    for prefix in prefixes:
        if _under(path, prefix):
            return prefix
    return None


def area_of(path: str) -> str:
    path = path.rstrip("/") or "/"
    # Team area first: "/team-dashboard" must not fall into "/team".
    if _match(path, TEAM_AREA):
        return Area.TEAM
    if _match(path, OWNER_AREA):
        return Area.OWNER
    if _match(path, OWNER_ENTRY):
        return Area.OWNER_ENTRY
    if _match(path, TEAM_ENTRY):
        return Area.TEAM_ENTRY
    return Area.PUBLIC


def home_for(account_kind: str) -> str:
    if account_kind == User.AccountKind.TEAM_MEMBER:
        return TEAM_HOME
    return OWNER_HOME


def entry_for(account_kind: str) -> str:
    if account_kind == User.AccountKind.TEAM_MEMBER:
        return TEAM_LOGIN
    return OWNER_LOGIN


def team_equivalent(path: str) -> str:
    """Nearest team-area page for an owner-area path."""
    path = path.rstrip("/") or "/"
    for prefix, target in OWNER_TO_TEAM.items():
        if _under(path, prefix):
            return target + path[len(prefix):]
    return TEAM_HOME


def owner_equivalent(path: str) -> str:
    """Nearest owner-area page for a team-area path."""
    path = path.rstrip("/") or "/"
    for prefix, target in TEAM_TO_OWNER.items():
        if _under(path, prefix):
            return target + path[len(prefix):]
    return OWNER_HOME


def decide(account_kind: Optional[str], has_membership: bool, path: str) -> GateDecision:
    """
    Decide what happens to a page request.

    ``account_kind`` is None for an unauthenticated request.
    """
    area = area_of(path)

    if area == Area.PUBLIC:
        return PROCEED

    if account_kind is None:
        if area == Area.OWNER:
            return Redirect(OWNER_LOGIN, "unauthenticated")
        if area == Area.TEAM:
            return Redirect(TEAM_LOGIN, "unauthenticated")
        return PROCEED

    if area in (Area.OWNER_ENTRY, Area.TEAM_ENTRY):
        return Redirect(home_for(account_kind), "already_authenticated")

    is_team = account_kind == User.AccountKind.TEAM_MEMBER

    if area == Area.TEAM and not is_team:
        return Redirect(owner_equivalent(path), "wrong_area")
    if area == Area.OWNER and is_team:
        return Redirect(team_equivalent(path), "wrong_area")

    if not has_membership:
        return Deny("no_tenant")

    return PROCEED


def gate(request, *, identity=None, resolver=None) -> GateDecision:
    """
    Resolve the request's actor and decide.

    Lookups go through the request-scoped membership cache, so calling
    this from the middleware and again from a view costs one query.
    """
    from accounts.identity import Identity
    from accounts.membership import default_resolver

    identity = identity or Identity()
    resolver = resolver or default_resolver

    account = identity.resolve(request)
    if not account:
        return decide(None, False, request.path)

    membership = resolver.cached_membership_of(account.pk)
    return decide(account.account_kind, membership is not None, request.path)
