# SPDX-License-Identifier: Apache-2.0

"""
Transition authority for the grievance workflow.

This module contains pure functions deciding who may move a case between
statuses and which resolution log entry types each role may write. Roles
are derived from case fields and caller identity on every call and are
never cached across operations.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime

from ..models.entities import Case, CallerContext
from ..models.enums import CaseStatus, CaseRole, NoteType


MEDIATOR_OR_ADMIN: FrozenSet[CaseRole] = frozenset({CaseRole.MEDIATOR, CaseRole.ADMINISTRATOR})

# (from, to) -> roles permitted to request the move
TRANSITION_TABLE: Dict[Tuple[CaseStatus, CaseStatus], FrozenSet[CaseRole]] = {
    (CaseStatus.OPEN, CaseStatus.UNDER_REVIEW): MEDIATOR_OR_ADMIN | {CaseRole.REPORTER},
    (CaseStatus.OPEN, CaseStatus.MEDIATION): MEDIATOR_OR_ADMIN,
    (CaseStatus.UNDER_REVIEW, CaseStatus.MEDIATION): MEDIATOR_OR_ADMIN,
    (CaseStatus.UNDER_REVIEW, CaseStatus.DISMISSED): MEDIATOR_OR_ADMIN,
    (CaseStatus.MEDIATION, CaseStatus.RESOLVED): MEDIATOR_OR_ADMIN | {CaseRole.REPORTER},
    (CaseStatus.MEDIATION, CaseStatus.DISMISSED): MEDIATOR_OR_ADMIN,
}

NOTE_TYPE_PERMISSIONS: Dict[CaseRole, FrozenSet[NoteType]] = {
    CaseRole.MEDIATOR: frozenset({NoteType.MEDIATION, NoteType.DECISION}),
    CaseRole.ADMINISTRATOR: frozenset({NoteType.MEDIATION, NoteType.DECISION}),
    CaseRole.REPORTER: frozenset({NoteType.NOTE, NoteType.ESCALATION}),
    CaseRole.RESPONDENT: frozenset({NoteType.RESPONSE, NoteType.PROPOSAL}),
    CaseRole.UNINVOLVED: frozenset({NoteType.RESPONSE, NoteType.PROPOSAL}),
}

# Note type of the system entry written when a case enters a status
SYSTEM_NOTE_TYPES: Dict[CaseStatus, NoteType] = {
    CaseStatus.UNDER_REVIEW: NoteType.NOTE,
    CaseStatus.MEDIATION: NoteType.MEDIATION,
    CaseStatus.RESOLVED: NoteType.DECISION,
    CaseStatus.DISMISSED: NoteType.DECISION,
}

ERROR_INVALID_STATE = "invalid_state"
ERROR_INVALID_TRANSITION = "invalid_transition"
ERROR_FORBIDDEN = "forbidden"


@dataclass
class TransitionDecision:
    """Result of a transition authorization check."""
    allowed: bool
    reason: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class TransitionPlan:
    """Field updates and system log entry produced by an approved transition."""
    updates: Dict[str, object]
    note_type: NoteType
    log_content: str
    from_status: CaseStatus
    to_status: CaseStatus


def resolve_role(
    case: Case,
    caller: CallerContext,
    respondent_group_members: Iterable[str] = ()
) -> CaseRole:
    """
    Compute the caller's relationship to a case.

    A caller holding several relationships gets the first match in the order
    reporter, respondent, mediator, administrator, so a party to the dispute
    never acts with the authority of a neutral role on it.

    Args:
        case: Case being acted upon
        caller: Authenticated caller
        respondent_group_members: Current members of the respondent group

    Returns:
        CaseRole for this caller on this case
    """
    user_id = caller.user_id

    if user_id == case.reporter_id:
        return CaseRole.REPORTER

    if case.respondent_user_id and user_id == case.respondent_user_id:
        return CaseRole.RESPONDENT

    if case.respondent_group_id and user_id in set(respondent_group_members):
        return CaseRole.RESPONDENT

    if case.mediator_id and user_id == case.mediator_id:
        return CaseRole.MEDIATOR

    if caller.is_admin:
        return CaseRole.ADMINISTRATOR

    return CaseRole.UNINVOLVED


def authorize_transition(
    current_status: CaseStatus,
    role: CaseRole,
    requested_status: CaseStatus
) -> TransitionDecision:
    """
    Decide whether a role may move a case between two statuses.

    Args:
        current_status: Status the case is in
        role: Caller's role on the case
        requested_status: Desired next status

    Returns:
        TransitionDecision with allow/deny and the failure kind
    """
    current_status = CaseStatus(current_status)
    requested_status = CaseStatus(requested_status)

    if current_status.is_terminal:
        return TransitionDecision(
            allowed=False,
            reason=f"Case is {current_status.value} and can no longer change status",
            error_kind=ERROR_INVALID_STATE
        )

    permitted_roles = TRANSITION_TABLE.get((current_status, requested_status))
    if permitted_roles is None:
        return TransitionDecision(
            allowed=False,
            reason=f"Invalid status transition from {current_status.value} to {requested_status.value}",
            error_kind=ERROR_INVALID_TRANSITION
        )

    if role not in permitted_roles:
        return TransitionDecision(
            allowed=False,
            reason=(
                f"Role '{role.value}' may not move a case from "
                f"{current_status.value} to {requested_status.value}"
            ),
            error_kind=ERROR_FORBIDDEN
        )

    return TransitionDecision(allowed=True)


def available_transitions(current_status: CaseStatus, role: CaseRole) -> List[CaseStatus]:
    """
    List the statuses a role may move a case to from its current status.

    Args:
        current_status: Status the case is in
        role: Caller's role on the case

    Returns:
        Reachable statuses in table order
    """
    return [
        to_status
        for (from_status, to_status), roles in TRANSITION_TABLE.items()
        if from_status == current_status and role in roles
    ]


def validate_resolution_text(requested_status: CaseStatus, resolution_text: Optional[str]) -> Optional[str]:
    """
    Check resolution text against the requested status.

    Returns:
        Error message, or None when the combination is valid
    """
    if requested_status == CaseStatus.RESOLVED:
        if resolution_text is None or not resolution_text.strip():
            return "Resolution text is required to resolve a case"
        return None

    if resolution_text is not None:
        return "Resolution text is only accepted when resolving a case"

    return None


def plan_transition(
    case: Case,
    role: CaseRole,
    requested_status: CaseStatus,
    actor_id: str,
    now: datetime,
    resolution_text: Optional[str] = None
) -> TransitionPlan:
    """
    Build the field updates and system log entry for an authorized transition.

    The resolution text is stored on the case only; the system log entry
    names the move and the actor.

    Callers must have obtained an allowing TransitionDecision and a clean
    resolution text check first.

    Args:
        case: Case as read from the store
        role: Caller's role on the case
        requested_status: Target status
        actor_id: Caller user ID
        now: Commit timestamp
        resolution_text: Resolution summary when resolving

    Returns:
        TransitionPlan to hand to the case store
    """
    requested_status = CaseStatus(requested_status)
    updates: Dict[str, object] = {
        "status": requested_status,
        "updated_at": now
    }
    content = (
        f"Status changed from {case.status.value} to {requested_status.value} "
        f"by {role.value} {actor_id}"
    )

    if requested_status == CaseStatus.RESOLVED:
        text = resolution_text.strip()
        updates["resolution_text"] = text
        updates["resolved_at"] = now

    return TransitionPlan(
        updates=updates,
        note_type=SYSTEM_NOTE_TYPES[requested_status],
        log_content=content,
        from_status=case.status,
        to_status=requested_status
    )


def allowed_note_types(role: CaseRole) -> List[NoteType]:
    """List the note types a role may append, in declaration order."""
    permitted = NOTE_TYPE_PERMISSIONS.get(role, frozenset())
    return [note_type for note_type in NoteType if note_type in permitted]


def authorize_note_type(role: CaseRole, note_type: NoteType) -> TransitionDecision:
    """
    Decide whether a role may append a resolution log entry of a given type.

    Args:
        role: Caller's role on the case
        note_type: Requested entry type

    Returns:
        TransitionDecision with allow/deny
    """
    note_type = NoteType(note_type)

    if note_type in NOTE_TYPE_PERMISSIONS.get(role, frozenset()):
        return TransitionDecision(allowed=True)

    return TransitionDecision(
        allowed=False,
        reason=f"Role '{role.value}' may not add '{note_type.value}' entries",
        error_kind=ERROR_FORBIDDEN
    )
