# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Grievance workflow engine.

The engine is the only entry point for case mutations. Each operation
loads the case, derives the caller's role fresh, consults the transition
authority, and commits through the case store under a version precondition
together with its system log entry. Notifications go out only after the
commit and never undo it.
"""

import os
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.errors import (
    GrievanceError,
    InvalidArgument,
    Forbidden,
    NotFound,
    InvalidTransition,
    InvalidState,
    Conflict
)
from ..domain.eligibility import check_mediator_eligibility, filter_eligible_mediators
from ..domain.grievances import CaseFilters, validate_filing
from ..domain.transitions import (
    ERROR_INVALID_STATE,
    ERROR_INVALID_TRANSITION,
    allowed_note_types,
    authorize_note_type,
    authorize_transition,
    available_transitions,
    plan_transition,
    resolve_role,
    validate_resolution_text
)
from ..domain.votes import VoteTally, check_vote_eligibility, tally_votes
from ..models.base import utc_now
from ..models.entities import (
    Case,
    CaseEvent,
    CallerContext,
    ResolutionLogEntry,
    Vote,
    SYSTEM_AUTHOR_ID
)
from ..models.enums import CaseEventKind, CaseRole, CaseStatus, CaseView, NoteType, VoteChoice
from ..models.requests import FileCaseRequest
from .case_store import CaseStore, Directory, PaginationResult
from .notifier import CaseNotifier, NullNotifier

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class AvailableActions:
    """What a caller may do on a case right now."""
    role: CaseRole
    transitions: List[CaseStatus] = field(default_factory=list)
    note_types: List[NoteType] = field(default_factory=list)
    can_vote: bool = False
    can_assign_mediator: bool = False


class GrievanceWorkflowEngine:
    """Orchestrates grievance case operations."""

    def __init__(
        self,
        store: CaseStore,
        directory: Directory,
        notifier: Optional[CaseNotifier] = None,
        require_mediator_credential: bool = True,
        clock: Optional[Callable] = None
    ):
        self.store = store
        self.directory = directory
        self.notifier = notifier or NullNotifier()
        self.require_mediator_credential = require_mediator_credential
        self._clock = clock or utc_now

    # Helpers

    @contextmanager
    def _operation(self, name: str, caller: Optional[CallerContext] = None, case_id: Optional[str] = None):
        with tracer.start_as_current_span(f"workflow.{name}") as span:
            attributes = {"workflow.operation": name}
            if caller is not None:
                attributes["user.id"] = caller.user_id
            if case_id is not None:
                attributes["case.id"] = case_id
            span.set_attributes(attributes)

            try:
                yield span
            except GrievanceError as e:
                span.set_attributes({
                    "workflow.outcome": e.error_type,
                    "workflow.retryable": e.retryable
                })
                if e.status_code >= 500:
                    span.set_status(Status(StatusCode.ERROR, e.message))
                logger.info(
                    f"Grievance operation {name} rejected: {e.error_type}",
                    extra={"extra_fields": {"operation": name, "case_id": case_id, "error": e.message}}
                )
                raise

            span.set_attribute("workflow.outcome", "ok")

    def _load_case(self, case_id: str) -> Case:
        case = self.store.get_case(case_id)
        if case is None:
            raise NotFound(f"Case {case_id} not found")
        return case

    def _group_members(self, case: Case) -> List[str]:
        if not case.respondent_group_id:
            return []
        return self.directory.get_group_members(case.respondent_group_id)

    def _voter_ids(self, case: Case) -> List[str]:
        return [vote.voter_id for vote in self.store.list_votes(case.id)]

    def _notify(self, case: Case, event_kind: CaseEventKind, actor_id: str) -> None:
        event = CaseEvent(
            case_id=case.id,
            event_kind=event_kind,
            status=case.status,
            actor_id=actor_id,
            occurred_at=self._clock()
        )
        try:
            self.notifier.notify(event)
        except Exception as e:
            logger.error(
                "Case notification failed",
                extra={"extra_fields": {"case_id": case.id, "event_kind": event_kind.value, "error": str(e)}},
                exc_info=True
            )

    def _check_expected_version(self, case: Case, expected_version: Optional[int]) -> int:
        if expected_version is None:
            return case.version
        if expected_version != case.version:
            raise Conflict(case.id, expected_version, case.version)
        return expected_version

    # Mutating operations

    def file_case(self, caller: CallerContext, request: FileCaseRequest) -> Case:
        """
        File a new case in status open at version 1.

        Raises:
            InvalidArgument: blank title or description, both respondents named
        """
        with self._operation("file_case", caller) as span:
            validation = validate_filing(
                request.title,
                request.description,
                request.respondent_user_id,
                request.respondent_group_id,
                caller.user_id
            )
            if not validation.is_valid:
                raise InvalidArgument("Case validation failed", validation.errors)

            now = self._clock()
            case = Case(
                title=request.title,
                description=request.description,
                category=request.category,
                priority=request.priority,
                reporter_id=caller.user_id,
                respondent_user_id=request.respondent_user_id or None,
                respondent_group_id=request.respondent_group_id or None,
                location=request.location,
                evidence_refs=list(request.evidence_refs),
                status=CaseStatus.OPEN,
                created_at=now,
                updated_at=now,
                version=1
            )
            log_entry = ResolutionLogEntry(
                case_id=case.id,
                author_id=SYSTEM_AUTHOR_ID,
                note_type=NoteType.NOTE,
                content="Case filed",
                is_system=True,
                actor_id=caller.user_id,
                created_at=now
            )

            case = self.store.insert_case(case, log_entry)
            span.set_attribute("case.id", case.id)

            logger.info(
                "Grievance case filed",
                extra={"extra_fields": {
                    "case_id": case.id,
                    "reporter_id": caller.user_id,
                    "category": case.category.value,
                    "warnings": validation.warnings
                }}
            )

        self._notify(case, CaseEventKind.CASE_FILED, caller.user_id)
        return case

    def assign_mediator(
        self,
        case_id: str,
        mediator_id: str,
        caller: CallerContext,
        expected_version: Optional[int] = None
    ) -> Case:
        """
        Assign or reassign the mediator of a case.

        A caller may assign themselves when they have no stake in the case,
        holding the certified mediator credential when that check is enabled.
        Administrators may assign anyone from the eligible pool.

        Raises:
            NotFound, InvalidState, Forbidden, InvalidArgument, Conflict
        """
        with self._operation("assign_mediator", caller, case_id) as span:
            if not mediator_id:
                raise InvalidArgument("mediator_id is required")

            case = self._load_case(case_id)
            if case.is_terminal:
                raise InvalidState(f"Case is {case.status.value}; the mediator can no longer change")

            members = self._group_members(case)
            role = resolve_role(case, caller, members)

            if mediator_id == caller.user_id:
                eligibility = check_mediator_eligibility(case, caller.user_id, members, self._voter_ids(case))
                if not eligibility.eligible:
                    raise Forbidden(eligibility.reason)
                if self.require_mediator_credential and not caller.is_certified_mediator:
                    raise Forbidden("Self-assignment requires the certified_mediator credential")
                path = "self"
            elif role == CaseRole.ADMINISTRATOR:
                pool = filter_eligible_mediators(
                    case,
                    self.directory.list_certified_mediators(),
                    members,
                    self._voter_ids(case)
                )
                if mediator_id not in pool:
                    raise InvalidArgument(f"User {mediator_id} is not an eligible mediator for this case")
                path = "administrator"
            else:
                raise Forbidden("Only administrators may assign another user as mediator")

            version = self._check_expected_version(case, expected_version)
            now = self._clock()

            previous = case.mediator_id
            if previous:
                content = f"Mediator reassigned: {previous} → {mediator_id}"
            else:
                content = f"Mediator assigned: {mediator_id}"

            log_entry = ResolutionLogEntry(
                case_id=case.id,
                author_id=SYSTEM_AUTHOR_ID,
                note_type=NoteType.MEDIATION,
                content=content,
                is_system=True,
                actor_id=caller.user_id,
                created_at=now
            )

            updated = self.store.update_case(
                case.id,
                version,
                {"mediator_id": mediator_id, "updated_at": now},
                log_entry
            )
            span.set_attributes({"workflow.assignment_path": path, "case.version": updated.version})

            logger.info(
                "Mediator assigned",
                extra={"extra_fields": {
                    "case_id": case.id,
                    "mediator_id": mediator_id,
                    "previous_mediator_id": previous,
                    "actor_id": caller.user_id,
                    "path": path
                }}
            )

        self._notify(updated, CaseEventKind.MEDIATOR_ASSIGNED, caller.user_id)
        return updated

    def advance_status(
        self,
        case_id: str,
        caller: CallerContext,
        to_status: CaseStatus,
        expected_version: Optional[int] = None,
        resolution_text: Optional[str] = None
    ) -> Case:
        """
        Move a case to a new status.

        Args:
            case_id: Case to transition
            caller: Requesting user
            to_status: Target status
            expected_version: Version the caller read; defaults to the version just loaded
            resolution_text: Required when resolving, refused otherwise

        Raises:
            NotFound, InvalidState, Conflict, InvalidTransition, Forbidden, InvalidArgument
        """
        with self._operation("advance_status", caller, case_id) as span:
            try:
                to_status = CaseStatus(to_status)
            except ValueError:
                raise InvalidArgument(f"Unknown status: {to_status}")

            case = self._load_case(case_id)
            if case.is_terminal:
                raise InvalidState(f"Case is {case.status.value} and can no longer change status")

            version = self._check_expected_version(case, expected_version)

            members = self._group_members(case)
            role = resolve_role(case, caller, members)

            decision = authorize_transition(case.status, role, to_status)
            if not decision.allowed:
                if decision.error_kind == ERROR_INVALID_STATE:
                    raise InvalidState(decision.reason)
                if decision.error_kind == ERROR_INVALID_TRANSITION:
                    raise InvalidTransition(case.status.value, to_status.value)
                raise Forbidden(decision.reason)

            text_error = validate_resolution_text(to_status, resolution_text)
            if text_error:
                raise InvalidArgument(text_error)

            plan = plan_transition(case, role, to_status, caller.user_id, self._clock(), resolution_text)
            log_entry = ResolutionLogEntry(
                case_id=case.id,
                author_id=SYSTEM_AUTHOR_ID,
                note_type=plan.note_type,
                content=plan.log_content,
                is_system=True,
                actor_id=caller.user_id,
                created_at=plan.updates["updated_at"]
            )

            updated = self.store.update_case(case.id, version, plan.updates, log_entry)
            span.set_attributes({
                "case.from_status": plan.from_status.value,
                "case.to_status": plan.to_status.value,
                "case.version": updated.version,
                "user.role": role.value
            })

            logger.info(
                "Case status changed",
                extra={"extra_fields": {
                    "case_id": case.id,
                    "from_status": plan.from_status.value,
                    "to_status": plan.to_status.value,
                    "role": role.value,
                    "actor_id": caller.user_id
                }}
            )

        self._notify(updated, CaseEventKind.STATUS_CHANGED, caller.user_id)
        return updated

    def record_vote(self, case_id: str, caller: CallerContext, choice: VoteChoice) -> Vote:
        """
        Record a community vote.

        Raises:
            NotFound, Forbidden, InvalidState, AlreadyVoted
        """
        with self._operation("record_vote", caller, case_id) as span:
            try:
                choice = VoteChoice(choice)
            except ValueError:
                raise InvalidArgument(f"Unknown vote choice: {choice}")

            case = self._load_case(case_id)
            members = self._group_members(case)

            eligibility = check_vote_eligibility(case, caller.user_id, members)
            if not eligibility.allowed:
                raise Forbidden(eligibility.reason)

            if case.is_terminal:
                raise InvalidState(f"Case is {case.status.value}; voting is closed")

            vote = self.store.insert_vote(Vote(
                case_id=case.id,
                voter_id=caller.user_id,
                choice=choice,
                created_at=self._clock()
            ))
            span.set_attribute("vote.choice", choice.value)

            logger.info(
                "Vote recorded",
                extra={"extra_fields": {"case_id": case.id, "voter_id": caller.user_id, "choice": choice.value}}
            )

        self._notify(case, CaseEventKind.VOTE_RECORDED, caller.user_id)
        return vote

    def append_note(
        self,
        case_id: str,
        caller: CallerContext,
        note_type: NoteType,
        content: str,
        evidence_refs: Iterable[str] = ()
    ) -> ResolutionLogEntry:
        """
        Append a caller-authored entry to the resolution log.

        Raises:
            NotFound, InvalidState, InvalidArgument, Forbidden
        """
        with self._operation("append_note", caller, case_id) as span:
            try:
                note_type = NoteType(note_type)
            except ValueError:
                raise InvalidArgument(f"Unknown note type: {note_type}")

            case = self._load_case(case_id)
            if case.is_terminal:
                raise InvalidState(f"Case is {case.status.value}; the resolution log is closed")

            if content is None or not content.strip():
                raise InvalidArgument("Note content cannot be empty")

            role = resolve_role(case, caller, self._group_members(case))
            decision = authorize_note_type(role, note_type)
            if not decision.allowed:
                raise Forbidden(decision.reason)

            entry = self.store.append_log_entry(ResolutionLogEntry(
                case_id=case.id,
                author_id=caller.user_id,
                note_type=note_type,
                content=content,
                evidence_refs=list(evidence_refs),
                created_at=self._clock()
            ))
            span.set_attributes({"note.type": note_type.value, "user.role": role.value})

            logger.info(
                "Resolution log entry added",
                extra={"extra_fields": {"case_id": case.id, "author_id": caller.user_id, "note_type": note_type.value}}
            )

        self._notify(case, CaseEventKind.NOTE_ADDED, caller.user_id)
        return entry

    # Read accessors

    def get_case(self, case_id: str) -> Case:
        with self._operation("get_case", case_id=case_id):
            return self._load_case(case_id)

    def list_cases(
        self,
        caller: CallerContext,
        status: Optional[CaseStatus] = None,
        view: CaseView = CaseView.ALL,
        page: int = 1,
        page_size: int = 20
    ) -> PaginationResult:
        with self._operation("list_cases", caller):
            filters = CaseFilters(
                status=CaseStatus(status) if status is not None else None,
                view=CaseView(view),
                caller_id=caller.user_id
            )
            return self.store.list_cases(filters, page, page_size)

    def list_log_entries(self, case_id: str) -> List[ResolutionLogEntry]:
        """Resolution log of a case, oldest first."""
        with self._operation("list_log_entries", case_id=case_id):
            self._load_case(case_id)
            entries = self.store.list_log_entries(case_id)
            return sorted(entries, key=lambda entry: entry.created_at)

    def list_votes(self, case_id: str) -> List[Vote]:
        with self._operation("list_votes", case_id=case_id):
            self._load_case(case_id)
            return self.store.list_votes(case_id)

    def compute_tally(self, case_id: str) -> VoteTally:
        with self._operation("compute_tally", case_id=case_id):
            self._load_case(case_id)
            return tally_votes(case_id, self.store.list_votes(case_id))

    def compute_eligible_mediators(self, case_id: str) -> List[str]:
        """Certified mediators with no stake in the case, in directory order."""
        with self._operation("compute_eligible_mediators", case_id=case_id):
            case = self._load_case(case_id)
            return filter_eligible_mediators(
                case,
                self.directory.list_certified_mediators(),
                self._group_members(case),
                self._voter_ids(case)
            )

    def resolve_role(self, case: Case, caller: CallerContext) -> CaseRole:
        return resolve_role(case, caller, self._group_members(case))

    def available_actions(self, case: Case, caller: CallerContext) -> AvailableActions:
        """Transitions, note types, voting and assignment open to the caller."""
        members = self._group_members(case)
        role = resolve_role(case, caller, members)

        if case.is_terminal:
            return AvailableActions(role=role)

        has_voted = self.store.find_vote(case.id, caller.user_id) is not None
        can_vote = check_vote_eligibility(case, caller.user_id, members).allowed and not has_voted

        can_self_assign = (
            check_mediator_eligibility(
                case, caller.user_id, members, [caller.user_id] if has_voted else []
            ).eligible
            and (caller.is_certified_mediator or not self.require_mediator_credential)
        )

        return AvailableActions(
            role=role,
            transitions=available_transitions(case.status, role),
            note_types=allowed_note_types(role),
            can_vote=can_vote,
            can_assign_mediator=role == CaseRole.ADMINISTRATOR or can_self_assign
        )


def create_workflow_engine(redis_service=None) -> GrievanceWorkflowEngine:
    """
    Factory function to build the engine from environment configuration.

    Args:
        redis_service: Shared Redis service for realtime channels, if any

    Returns:
        GrievanceWorkflowEngine: Configured engine
    """
    backend = os.getenv('STORE_BACKEND', 'mongodb').lower()

    if backend == 'memory':
        from .case_store import InMemoryCaseStore, InMemoryDirectory
        store = InMemoryCaseStore()
        directory = InMemoryDirectory()
    else:
        from .mongodb import MongoCaseStore, MongoDirectory, get_mongodb_service
        mongodb_service = get_mongodb_service()
        store = MongoCaseStore(mongodb_service)
        directory = MongoDirectory(mongodb_service)

    amqp_service = None
    if os.getenv('AMQP_ENABLED', 'true').lower() == 'true':
        from .amqp import create_amqp_service
        amqp_service = create_amqp_service()

    notifier = CaseNotifier(amqp_service=amqp_service, redis_service=redis_service)
    require_credential = os.getenv('REQUIRE_MEDIATOR_CREDENTIAL', 'true').lower() == 'true'

    logger.info(
        "Grievance workflow engine configured",
        extra={"extra_fields": {
            "store_backend": backend,
            "notification_channels": notifier.channels,
            "require_mediator_credential": require_credential
        }}
    )

    return GrievanceWorkflowEngine(
        store,
        directory,
        notifier=notifier,
        require_mediator_credential=require_credential
    )
