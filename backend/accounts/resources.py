"""
Resource descriptors for authorization.

authorize() receives either a saved model instance or a ResourceRef (for
creates, where no instance exists yet). describe() turns both into a
(kind, organization_id) pair using only attributes of the resource itself.

The single exception is an Account, which carries no organization column:
its organization is whatever the membership resolver says, and the
resolver is the one lookup authorization is allowed to make.
"""
from typing import NamedTuple, Optional


class Kind:
    ORGANIZATION = "organization"
    ACCOUNT = "account"
    MEMBERSHIP = "membership"
    CLIENT = "client"
    PROJECT = "project"
    ASSIGNMENT = "assignment"
    TASK = "task"
    PAYMENT = "payment"
    EXPENSE = "expense"

    ALL = frozenset(
        {
            ORGANIZATION,
            ACCOUNT,
            MEMBERSHIP,
            CLIENT,
            PROJECT,
            ASSIGNMENT,
            TASK,
            PAYMENT,
            EXPENSE,
        }
    )


# Model label -> resource kind. Labels rather than classes so this module
# never imports the projects or ledger apps.
MODEL_KINDS = {
    "accounts.organization": Kind.ORGANIZATION,
    "accounts.user": Kind.ACCOUNT,
    "accounts.membership": Kind.MEMBERSHIP,
    "projects.client": Kind.CLIENT,
    "projects.project": Kind.PROJECT,
    "projects.projectteammember": Kind.ASSIGNMENT,
    "projects.task": Kind.TASK,
    "ledger.payment": Kind.PAYMENT,
    "ledger.expense": Kind.EXPENSE,
}


class ResourceRef(NamedTuple):
    """A resource that does not exist yet (create), or a bare reference."""

    kind: str
    organization_id: Optional[int]


class Descriptor(NamedTuple):
    kind: str
    organization_id: Optional[int]
    instance: object


def kind_of(resource) -> str:
    if isinstance(resource, ResourceRef):
        return resource.kind
    label = getattr(getattr(resource, "_meta", None), "label_lower", None)
    try:
        return MODEL_KINDS[label]
    except KeyError:
        raise TypeError(f"Not an authorizable resource: {resource!r}")


def describe(resource, resolver) -> Descriptor:
    """
    Build the descriptor for ``resource``.

    ``resolver`` is only consulted for Account instances.
    """
    kind = kind_of(resource)
    if kind not in Kind.ALL:
        raise TypeError(f"Unknown resource kind: {kind}")

    if isinstance(resource, ResourceRef):
        return Descriptor(kind, resource.organization_id, None)

    if kind == Kind.ORGANIZATION:
        return Descriptor(kind, resource.pk, resource)

    if kind == Kind.ACCOUNT:
        info = resolver.cached_membership_of(resource.pk)
        return Descriptor(kind, info.organization_id if info else None, resource)

    return Descriptor(kind, resource.organization_id, resource)
