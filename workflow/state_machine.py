"""
Purchase request state machine.

The request lifecycle is a linear happy path with a terminal rejection sink:

    submitted -> pm_approved -> president_approved -> purchased -> delivered -> received
    purchased -> received
    any non-terminal -> rejected

Every transition names the guard an actor has to satisfy. ``resolve_transition``
is pure: it never touches the data service.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from logging_config import logger
from models.purchase_request import RequestStatus, STATUS_LABEL
from models.user import Actor, UserRole
from workflow.errors import InvalidTransition, PermissionDenied


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MARK_PURCHASED = "mark_purchased"
    MARK_DELIVERED = "mark_delivered"
    MARK_RECEIVED = "mark_received"


@dataclass(frozen=True)
class Guard:
    """A capability an actor needs to fire a transition."""
    name: str
    description: str
    check: Callable[[Actor], bool]

    def allows(self, actor: Actor) -> bool:
        return self.check(actor)


@dataclass(frozen=True)
class Transition:
    from_state: RequestStatus
    to_state: RequestStatus
    action: Action
    guard: Guard


@dataclass(frozen=True)
class Workflow:
    name: str
    initial_state: RequestStatus
    terminal_states: Tuple[RequestStatus, ...]
    transitions: Tuple[Transition, ...]


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PM_ROLE = Guard(
    name="pm_role",
    description="Project manager or admin",
    check=lambda actor: actor.role == UserRole.PM or actor.is_admin,
)

PRESIDENT_ROLE = Guard(
    name="president_role",
    description="President or admin",
    check=lambda actor: actor.role == UserRole.PRESIDENT or actor.is_admin,
)

PURCHASE_CAPABILITY = Guard(
    name="purchase_capability",
    description="Purchasing rights (can_purchase, purchaser role) or admin",
    check=lambda actor: actor.may_purchase,
)

RECEIVE_CAPABILITY = Guard(
    name="receive_capability",
    description="Receiving rights (can_receive) or admin",
    check=lambda actor: actor.may_receive,
)

ADMIN_ROLE = Guard(
    name="admin_role",
    description="Admin",
    check=lambda actor: actor.is_admin,
)


# -----------------------------------------------------------------------------
# Transition table
# -----------------------------------------------------------------------------

S = RequestStatus

PURCHASE_REQUEST_WORKFLOW = Workflow(
    name="purchase_request",
    initial_state=S.SUBMITTED,
    terminal_states=(S.RECEIVED, S.REJECTED),
    transitions=(
        Transition(S.SUBMITTED, S.PM_APPROVED, Action.APPROVE, PM_ROLE),
        Transition(S.PM_APPROVED, S.PRESIDENT_APPROVED, Action.APPROVE, PRESIDENT_ROLE),
        Transition(S.PRESIDENT_APPROVED, S.PURCHASED, Action.MARK_PURCHASED, PURCHASE_CAPABILITY),
        Transition(S.PURCHASED, S.DELIVERED, Action.MARK_DELIVERED, PURCHASE_CAPABILITY),
        Transition(S.PURCHASED, S.RECEIVED, Action.MARK_RECEIVED, RECEIVE_CAPABILITY),
        Transition(S.DELIVERED, S.RECEIVED, Action.MARK_RECEIVED, RECEIVE_CAPABILITY),
        # Rejection belongs to the approver of the current stage; past approval only an admin may reject
        Transition(S.SUBMITTED, S.REJECTED, Action.REJECT, PM_ROLE),
        Transition(S.PM_APPROVED, S.REJECTED, Action.REJECT, PRESIDENT_ROLE),
        Transition(S.PRESIDENT_APPROVED, S.REJECTED, Action.REJECT, ADMIN_ROLE),
        Transition(S.PURCHASED, S.REJECTED, Action.REJECT, ADMIN_ROLE),
        Transition(S.DELIVERED, S.REJECTED, Action.REJECT, ADMIN_ROLE),
    ),
)

# Actor/timestamp columns stamped when a request enters a state. Never cleared.
STAMP_FIELDS: Dict[RequestStatus, Tuple[Optional[str], str]] = {
    S.PM_APPROVED: ("pm_approved_by", "pm_approved_at"),
    S.PRESIDENT_APPROVED: ("president_approved_by", "president_approved_at"),
    S.PURCHASED: ("purchased_by", "purchased_at"),
    S.DELIVERED: (None, "delivered_at"),
    S.RECEIVED: ("received_by", "received_at"),
    S.REJECTED: ("rejected_by", "rejected_at"),
}

logger.debug(
    f"Registered workflow {PURCHASE_REQUEST_WORKFLOW.name}: "
    f"{len(PURCHASE_REQUEST_WORKFLOW.transitions)} transitions"
)


def is_terminal(status: RequestStatus) -> bool:
    return RequestStatus(status) in PURCHASE_REQUEST_WORKFLOW.terminal_states


def transitions_from(status: RequestStatus) -> List[Transition]:
    status = RequestStatus(status)
    return [t for t in PURCHASE_REQUEST_WORKFLOW.transitions if t.from_state == status]


def resolve_transition(status: RequestStatus, action: Action, actor: Actor) -> RequestStatus:
    """
    Return the state ``action`` moves a request in ``status`` to.

    Raises InvalidTransition when the action is not defined from ``status`` and
    PermissionDenied when the actor fails the transition's guard.
    """
    status = RequestStatus(status)
    action = Action(action)

    if is_terminal(status):
        raise InvalidTransition(f"Request is already {STATUS_LABEL[status]}; no further actions are allowed")

    candidates = [t for t in transitions_from(status) if t.action == action]
    if not candidates:
        raise InvalidTransition(f"Cannot {action.value} a request that is {STATUS_LABEL[status]}")

    for transition in candidates:
        if transition.guard.allows(actor):
            return transition.to_state

    guard = candidates[0].guard
    logger.warning(
        f"Actor {actor.id} (role {actor.role.value}) failed guard {guard.name} "
        f"for {action.value} from {status.value}"
    )
    raise PermissionDenied(f"Not allowed to {action.value} this request: requires {guard.description}")


def available_actions(status: RequestStatus, actor: Actor) -> List[Action]:
    actions = []
    for transition in transitions_from(status):
        if transition.guard.allows(actor) and transition.action not in actions:
            actions.append(transition.action)
    return actions


def stamp_fields(target: RequestStatus, actor_id: str, now: datetime) -> Dict[str, object]:
    """The status write for entering ``target``: status plus its stamp pair."""
    payload = {"status": RequestStatus(target).value}
    by_field, at_field = STAMP_FIELDS.get(RequestStatus(target), (None, None))
    if by_field:
        payload[by_field] = actor_id
    if at_field:
        payload[at_field] = now
    return payload


def worklist_statuses(actor: Actor) -> List[RequestStatus]:
    """Statuses waiting on this actor's next action."""
    if actor.is_admin:
        return [s for s in RequestStatus if not is_terminal(s)]

    statuses = []
    if actor.role == UserRole.PM:
        statuses.append(S.SUBMITTED)
    if actor.role == UserRole.PRESIDENT:
        statuses.append(S.PM_APPROVED)
    if actor.may_purchase:
        statuses.extend([S.PRESIDENT_APPROVED, S.PURCHASED])
    if actor.may_receive:
        statuses.extend([s for s in (S.PURCHASED, S.DELIVERED) if s not in statuses])
    return statuses
