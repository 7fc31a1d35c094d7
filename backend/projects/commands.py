# projects/commands.py
"""
Command layer for clients, projects and tasks.

Assignments (project team members) belong to the ledger engine because
their allocation is part of the ledger invariants; see ledger.engine.
"""

import logging

from django.db import transaction

from accounts.authz import ActorContext, CREATE, DELETE, UPDATE, require
from accounts.commands import CommandResult
from accounts.models import Membership
from accounts.resources import Kind, ResourceRef
from ledger import policies
from ledger.write_barrier import ledger_writes_allowed

from .models import Client, Project, Task

logger = logging.getLogger(__name__)


# =============================================================================
# Clients
# =============================================================================

@transaction.atomic
def create_client(actor: ActorContext, name: str, email: str = "", phone: str = "") -> CommandResult:
    require(actor, ResourceRef(Kind.CLIENT, actor.organization_id), CREATE)

    if not name or not name.strip():
        return CommandResult.fail("Client name is required.")

    client = Client.objects.create(
        organization_id=actor.organization_id,
        name=name.strip(),
        email=email or "",
        phone=phone or "",
    )
    return CommandResult.ok(client)


# =============================================================================
# Projects
# =============================================================================

def _parse_budget(value):
    return policies.parse_optional_amount(value, "Budget")


@transaction.atomic
def create_project(
    actor: ActorContext,
    name: str,
    client_id: int = None,
    description: str = "",
    status: str = Project.Status.NEW,
    budget=None,
    start_date=None,
    deadline=None,
    order: int = None,
) -> CommandResult:
    require(actor, ResourceRef(Kind.PROJECT, actor.organization_id), CREATE)

    if not name or not name.strip():
        return CommandResult.fail("Project name is required.")

    if status not in Project.Status.values:
        return CommandResult.fail(f"Invalid status. Must be one of: {Project.Status.values}")

    budget, reason = _parse_budget(budget)
    if reason:
        return CommandResult.fail(reason)

    if start_date and deadline and deadline < start_date:
        return CommandResult.fail("Deadline cannot be before the start date.")

    client = None
    if client_id is not None:
        client = Client.objects.for_organization(actor.organization_id).filter(pk=client_id).first()
        if client is None:
            return CommandResult.fail("Client not found.", code="not_found")

    if order is None:
        # New projects go to the end of their status column.
        last = (
            Project.objects.for_organization(actor.organization_id)
            .filter(status=status)
            .order_by("-order")
            .values_list("order", flat=True)
            .first()
        )
        order = (last or 0) + 1

    project = Project.objects.create(
        organization_id=actor.organization_id,
        client=client,
        name=name.strip(),
        description=description or "",
        status=status,
        budget=budget,
        start_date=start_date,
        deadline=deadline,
        order=order,
        created_by=actor.user,
    )

    logger.info(
        "Project %s created",
        project.pk,
        extra={"organization_id": actor.organization_id},
    )
    return CommandResult.ok(project)


PROJECT_UPDATABLE_FIELDS = ("name", "description", "status", "budget", "start_date", "deadline", "order", "client_id")


@transaction.atomic
def update_project(actor: ActorContext, project: Project, **changes) -> CommandResult:
    """
    Update project fields. total_paid is never touched here: the ledger
    engine owns it, and update_fields keeps a stale instance from
    overwriting it.
    """
    require(actor, project, UPDATE)

    unknown = set(changes) - set(PROJECT_UPDATABLE_FIELDS)
    if unknown:
        return CommandResult.fail(f"Cannot update: {', '.join(sorted(unknown))}")

    locked = Project.objects.select_for_update().get(pk=project.pk)

    if "name" in changes:
        if not changes["name"] or not changes["name"].strip():
            return CommandResult.fail("Project name is required.")
        changes["name"] = changes["name"].strip()

    if "status" in changes and changes["status"] not in Project.Status.values:
        return CommandResult.fail(f"Invalid status. Must be one of: {Project.Status.values}")

    if "budget" in changes:
        budget, reason = _parse_budget(changes["budget"])
        if reason:
            return CommandResult.fail(reason)
        if budget is not None and budget < locked.total_paid:
            return CommandResult.fail(
                f"Budget cannot be lower than the amount already paid ({locked.total_paid})."
            )
        changes["budget"] = budget

    if changes.get("client_id") is not None:
        exists = Client.objects.for_organization(locked.organization_id).filter(pk=changes["client_id"]).exists()
        if not exists:
            return CommandResult.fail("Client not found.", code="not_found")

    start_date = changes.get("start_date", locked.start_date)
    deadline = changes.get("deadline", locked.deadline)
    if start_date and deadline and deadline < start_date:
        return CommandResult.fail("Deadline cannot be before the start date.")

    for field, value in changes.items():
        setattr(locked, field, value)

    if changes:
        locked.save(update_fields=list(changes) + ["updated_at"])
    return CommandResult.ok(locked)


@transaction.atomic
def delete_project(actor: ActorContext, project: Project) -> CommandResult:
    """Delete a project with its assignments, tasks and payments."""
    require(actor, project, DELETE)
    project_id = project.pk

    with ledger_writes_allowed():
        project.delete()

    logger.info(
        "Project %s deleted",
        project_id,
        extra={"organization_id": actor.organization_id},
    )
    return CommandResult.ok({"project_id": project_id})


# =============================================================================
# Tasks
# =============================================================================

@transaction.atomic
def create_task(
    actor: ActorContext,
    project: Project,
    title: str,
    assigned_to_id: int = None,
    description: str = "",
    priority: str = Task.Priority.MEDIUM,
    due_date=None,
) -> CommandResult:
    require(actor, ResourceRef(Kind.TASK, project.organization_id), CREATE)

    if not title or not title.strip():
        return CommandResult.fail("Task title is required.")

    if priority not in Task.Priority.values:
        return CommandResult.fail(f"Invalid priority. Must be one of: {Task.Priority.values}")

    if assigned_to_id is not None:
        is_member = (
            Membership.objects.for_organization(project.organization_id)
            .active()
            .filter(user_id=assigned_to_id)
            .exists()
        )
        if not is_member:
            return CommandResult.fail("Assignee is not an active member of this organization.")

    task = Task.objects.create(
        organization_id=project.organization_id,
        project=project,
        title=title.strip(),
        description=description or "",
        assigned_to_id=assigned_to_id,
        priority=priority,
        due_date=due_date,
        created_by=actor.user,
    )
    return CommandResult.ok(task)


TASK_UPDATABLE_FIELDS = ("title", "description", "status", "priority", "due_date", "assigned_to_id")


@transaction.atomic
def update_task(actor: ActorContext, task: Task, **changes) -> CommandResult:
    """
    Update a task. Functional roles may only move their own tasks between
    statuses; owners and admins may change anything.
    """
    require(actor, task, UPDATE)

    unknown = set(changes) - set(TASK_UPDATABLE_FIELDS)
    if unknown:
        return CommandResult.fail(f"Cannot update: {', '.join(sorted(unknown))}")

    if not actor.is_admin and set(changes) - {"status"}:
        return CommandResult.fail("Team members can only change a task's status.")

    if "status" in changes and changes["status"] not in Task.Status.values:
        return CommandResult.fail(f"Invalid status. Must be one of: {Task.Status.values}")

    if "priority" in changes and changes["priority"] not in Task.Priority.values:
        return CommandResult.fail(f"Invalid priority. Must be one of: {Task.Priority.values}")

    if changes.get("assigned_to_id") is not None:
        is_member = (
            Membership.objects.for_organization(task.organization_id)
            .active()
            .filter(user_id=changes["assigned_to_id"])
            .exists()
        )
        if not is_member:
            return CommandResult.fail("Assignee is not an active member of this organization.")

    for field, value in changes.items():
        setattr(task, field, value)

    if changes:
        task.save(update_fields=list(changes) + ["updated_at"])
    return CommandResult.ok(task)


@transaction.atomic
def delete_task(actor: ActorContext, task: Task) -> CommandResult:
    require(actor, task, DELETE)
    task_id = task.pk
    task.delete()
    return CommandResult.ok({"task_id": task_id})
