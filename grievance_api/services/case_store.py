# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Case store contract and in-process implementation.

The store is the only holder of mutable shared state. Case rows change only
through version-conditioned updates; resolution log entries and votes are
append-only, with votes unique per (case, voter).
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple
from opentelemetry import trace

from ..domain.errors import AlreadyVoted, Conflict, Forbidden, InvalidState, NotFound
from ..domain.grievances import CaseFilters
from ..models.entities import Case, ResolutionLogEntry, Vote

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List, total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


class CaseStore:
    """
    Persistence contract for grievance cases, log entries and votes.

    Implementations must guarantee:
    - update_case commits only when the stored version equals expected_version,
      increments the version, and writes the accompanying log entry in the
      same unit of work; otherwise it raises Conflict (or NotFound)
    - insert_vote is atomic with the (case_id, voter_id) uniqueness check and
      raises AlreadyVoted on a duplicate
    - append_log_entry and insert_vote raise InvalidState once the stored case
      is terminal
    - a user never holds a vote on a case they mediate; insert_vote and
      mediator updates raise Forbidden otherwise
    - list_log_entries returns entries in creation order
    """

    def insert_case(self, case: Case, log_entry: Optional[ResolutionLogEntry] = None) -> Case:
        raise NotImplementedError

    def get_case(self, case_id: str) -> Optional[Case]:
        raise NotImplementedError

    def list_cases(self, filters: CaseFilters, page: int = 1, page_size: int = 20) -> PaginationResult:
        raise NotImplementedError

    def update_case(
        self,
        case_id: str,
        expected_version: int,
        updates: Dict[str, object],
        log_entry: Optional[ResolutionLogEntry] = None
    ) -> Case:
        raise NotImplementedError

    def append_log_entry(self, entry: ResolutionLogEntry) -> ResolutionLogEntry:
        raise NotImplementedError

    def list_log_entries(self, case_id: str) -> List[ResolutionLogEntry]:
        raise NotImplementedError

    def insert_vote(self, vote: Vote) -> Vote:
        raise NotImplementedError

    def find_vote(self, case_id: str, voter_id: str) -> Optional[Vote]:
        raise NotImplementedError

    def list_votes(self, case_id: str) -> List[Vote]:
        raise NotImplementedError

    def health_check(self) -> Dict[str, object]:
        raise NotImplementedError


class Directory:
    """Lookups of group membership and mediator credentials."""

    def get_group_members(self, group_id: str) -> List[str]:
        raise NotImplementedError

    def list_certified_mediators(self) -> List[str]:
        raise NotImplementedError


class InMemoryCaseStore(CaseStore):
    """
    Thread-safe in-process case store for development and tests.

    A single lock serializes writers, which provides both the version check
    and the vote uniqueness constraint.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._cases: Dict[str, Case] = {}
        self._log_entries: Dict[str, List[ResolutionLogEntry]] = {}
        self._votes: Dict[Tuple[str, str], Vote] = {}
        self._vote_order: Dict[str, List[Tuple[str, str]]] = {}
        logger.info("In-memory case store initialized")

    def insert_case(self, case: Case, log_entry: Optional[ResolutionLogEntry] = None) -> Case:
        with self._lock:
            if case.id in self._cases:
                raise ValueError(f"Case {case.id} already exists")

            self._cases[case.id] = case.model_copy(deep=True)
            self._log_entries[case.id] = []
            if log_entry is not None:
                self._log_entries[case.id].append(log_entry.model_copy(deep=True))

            logger.debug(f"Stored case {case.id}")
            return case.model_copy(deep=True)

    def get_case(self, case_id: str) -> Optional[Case]:
        with self._lock:
            case = self._cases.get(case_id)
            return case.model_copy(deep=True) if case else None

    def list_cases(self, filters: CaseFilters, page: int = 1, page_size: int = 20) -> PaginationResult:
        with self._lock:
            matching = [case for case in self._cases.values() if filters.matches(case)]

        matching.sort(key=lambda case: case.created_at, reverse=True)
        skip = (page - 1) * page_size
        items = [case.model_copy(deep=True) for case in matching[skip:skip + page_size]]
        return PaginationResult(items, len(matching), page, page_size)

    def update_case(
        self,
        case_id: str,
        expected_version: int,
        updates: Dict[str, object],
        log_entry: Optional[ResolutionLogEntry] = None
    ) -> Case:
        with tracer.start_as_current_span("store.memory.update_case") as span:
            span.set_attributes({
                "case.id": case_id,
                "case.expected_version": expected_version
            })

            with self._lock:
                stored = self._cases.get(case_id)
                if stored is None:
                    raise NotFound(f"Case {case_id} not found")

                if stored.version != expected_version:
                    span.set_attribute("store.result", "conflict")
                    raise Conflict(case_id, expected_version, stored.version)

                mediator_id = updates.get("mediator_id")
                if mediator_id and (case_id, mediator_id) in self._votes:
                    raise Forbidden(f"User {mediator_id} holds a vote on case {case_id}")

                data = stored.model_dump()
                data.update(updates)
                data["version"] = stored.version + 1
                updated = Case.model_validate(data)

                self._cases[case_id] = updated
                if log_entry is not None:
                    self._log_entries[case_id].append(log_entry.model_copy(deep=True))

                span.set_attribute("store.result", "committed")
                return updated.model_copy(deep=True)

    def _require_open_case(self, case_id: str) -> Case:
        stored = self._cases.get(case_id)
        if stored is None:
            raise NotFound(f"Case {case_id} not found")
        if stored.is_terminal:
            raise InvalidState(f"Case is {stored.status.value}; the resolution log is closed")
        return stored

    def append_log_entry(self, entry: ResolutionLogEntry) -> ResolutionLogEntry:
        with self._lock:
            self._require_open_case(entry.case_id)
            self._log_entries[entry.case_id].append(entry.model_copy(deep=True))
            return entry

    def list_log_entries(self, case_id: str) -> List[ResolutionLogEntry]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._log_entries.get(case_id, [])]

    def insert_vote(self, vote: Vote) -> Vote:
        key = (vote.case_id, vote.voter_id)
        with self._lock:
            stored = self._require_open_case(vote.case_id)
            if stored.mediator_id == vote.voter_id:
                raise Forbidden("The mediator cannot vote on the case")
            if key in self._votes:
                raise AlreadyVoted(vote.case_id, vote.voter_id)
            self._votes[key] = vote.model_copy(deep=True)
            self._vote_order.setdefault(vote.case_id, []).append(key)
            return vote

    def find_vote(self, case_id: str, voter_id: str) -> Optional[Vote]:
        with self._lock:
            vote = self._votes.get((case_id, voter_id))
            return vote.model_copy(deep=True) if vote else None

    def list_votes(self, case_id: str) -> List[Vote]:
        with self._lock:
            return [self._votes[key].model_copy(deep=True) for key in self._vote_order.get(case_id, [])]

    def health_check(self) -> Dict[str, object]:
        with self._lock:
            return {
                "status": "healthy",
                "backend": "memory",
                "cases": len(self._cases)
            }


class InMemoryDirectory(Directory):
    """Directory backed by plain dictionaries."""

    def __init__(self, groups: Optional[Dict[str, List[str]]] = None,
                 certified_mediators: Optional[List[str]] = None):
        self._lock = threading.RLock()
        self._groups: Dict[str, List[str]] = {
            group_id: list(members) for group_id, members in (groups or {}).items()
        }
        self._certified: List[str] = list(certified_mediators or [])

    def set_group_members(self, group_id: str, members: List[str]) -> None:
        with self._lock:
            self._groups[group_id] = list(members)

    def add_certified_mediator(self, user_id: str) -> None:
        with self._lock:
            if user_id not in self._certified:
                self._certified.append(user_id)

    def get_group_members(self, group_id: str) -> List[str]:
        with self._lock:
            return list(self._groups.get(group_id, []))

    def list_certified_mediators(self) -> List[str]:
        with self._lock:
            return list(self._certified)
