# SPDX-License-Identifier: Apache-2.0

"""
Grievance case domain logic.

This module contains pure functions for filing validation, case filtering,
and HAL response transformation. Affordance links are derived from the same
transition table the workflow engine enforces.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass

from ..models.entities import Case, CallerContext, ResolutionLogEntry, Vote
from ..models.enums import CaseStatus, CaseRole, CaseView
from .transitions import available_transitions, allowed_note_types
from .votes import VoteTally


TRANSITION_LINK_NAMES = {
    CaseStatus.UNDER_REVIEW: "review",
    CaseStatus.MEDIATION: "mediate",
    CaseStatus.RESOLVED: "resolve",
    CaseStatus.DISMISSED: "dismiss",
}


@dataclass
class ValidationResult:
    """Result of case input validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []


@dataclass
class CaseFilters:
    """Filters for case queries."""
    status: Optional[CaseStatus] = None
    view: CaseView = CaseView.ALL
    caller_id: Optional[str] = None

    def matches(self, case: Case) -> bool:
        """Check whether a case passes these filters."""
        if self.status is not None and case.status != CaseStatus(self.status):
            return False

        view = CaseView(self.view)
        if view == CaseView.MINE:
            return case.reporter_id == self.caller_id
        if view == CaseView.AGAINST_ME:
            return case.respondent_user_id is not None and case.respondent_user_id == self.caller_id
        if view == CaseView.MEDIATING:
            return case.mediator_id is not None and case.mediator_id == self.caller_id

        return True


def validate_filing(
    title: Optional[str],
    description: Optional[str],
    respondent_user_id: Optional[str] = None,
    respondent_group_id: Optional[str] = None,
    reporter_id: Optional[str] = None
) -> ValidationResult:
    """
    Validate a new case before it is created.

    Args:
        title: Case title
        description: Case description
        respondent_user_id: Named respondent user
        respondent_group_id: Named respondent group
        reporter_id: Filing user

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []
    warnings = []

    if not title or not title.strip():
        errors.append("Title is required")
    elif len(title.strip()) > 200:
        errors.append("Title cannot exceed 200 characters")

    if not description or not description.strip():
        errors.append("Description is required")
    elif len(description.strip()) > 5000:
        errors.append("Description cannot exceed 5000 characters")

    if respondent_user_id and respondent_group_id:
        errors.append("Name either a respondent user or a respondent group, not both")

    if reporter_id and respondent_user_id and reporter_id == respondent_user_id:
        errors.append("Reporter cannot file a case against themselves")

    if not respondent_user_id and not respondent_group_id:
        warnings.append("Case has no named respondent")

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings
    )


def build_case_hal_response(
    case: Case,
    role: CaseRole,
    base_url: str,
    tally: Optional[VoteTally] = None,
    can_vote: bool = False,
    can_assign_mediator: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Build HAL response for a case with affordance links.

    Args:
        case: Case entity
        role: Caller's role on the case
        base_url: Base URL for link generation
        tally: Vote tally to embed
        can_vote: Whether the caller may still vote
        can_assign_mediator: Whether the caller may assign a mediator; derived
            from the role when omitted

    Returns:
        HAL-formatted response dictionary
    """
    case_url = f"{base_url}/api/grievances/{case.id}"

    response = case.to_json()
    response["caller_role"] = role.value
    response["_links"] = {
        "self": {"href": case_url},
        "notes": {"href": f"{case_url}/notes"},
        "votes": {"href": f"{case_url}/votes"},
        "tally": {"href": f"{case_url}/tally"},
        "collection": {"href": f"{base_url}/api/grievances"}
    }

    if tally is not None:
        response["tally"] = tally.to_dict()

    links = response["_links"]

    # Conditional affordances, none on a closed case
    if not case.is_terminal:
        for to_status in available_transitions(case.status, role):
            links[TRANSITION_LINK_NAMES[to_status]] = {
                "href": f"{case_url}/status",
                "method": "POST",
                "type": "application/json",
                "status": to_status.value
            }

        note_types = allowed_note_types(role)
        if note_types:
            links["add_note"] = {
                "href": f"{case_url}/notes",
                "method": "POST",
                "type": "application/json",
                "note_types": [note_type.value for note_type in note_types]
            }

        if can_vote:
            links["vote"] = {
                "href": f"{case_url}/votes",
                "method": "POST",
                "type": "application/json"
            }

        if can_assign_mediator is None:
            can_assign_mediator = role in (CaseRole.ADMINISTRATOR, CaseRole.MEDIATOR, CaseRole.UNINVOLVED)

        if can_assign_mediator:
            links["assign_mediator"] = {
                "href": f"{case_url}/mediator",
                "method": "POST",
                "type": "application/json"
            }

        if role in (CaseRole.ADMINISTRATOR, CaseRole.MEDIATOR):
            links["eligible_mediators"] = {"href": f"{case_url}/eligible-mediators"}

    return response


def build_case_collection_hal_response(
    cases: List[Case],
    caller: CallerContext,
    base_url: str,
    page: int = 1,
    page_size: int = 20,
    total_count: int = None
) -> Dict[str, Any]:
    """
    Build HAL collection response for cases.

    Args:
        cases: Page of case entities
        caller: Authenticated caller
        base_url: Base URL for link generation
        page: Current page number
        page_size: Items per page
        total_count: Total number of items (if known)

    Returns:
        HAL-formatted collection response
    """
    embedded_items = []
    for case in cases:
        item = case.to_json()
        item["_links"] = {"self": {"href": f"{base_url}/api/grievances/{case.id}"}}
        embedded_items.append(item)

    if total_count is None:
        total_count = len(cases)

    total_pages = (total_count + page_size - 1) // page_size

    response = {
        "total": total_count,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "_embedded": {
            "grievances": embedded_items
        },
        "_links": {
            "self": {"href": f"{base_url}/api/grievances?page={page}&size={page_size}"},
            "file": {
                "href": f"{base_url}/api/grievances",
                "method": "POST",
                "type": "application/json"
            }
        }
    }

    links = response["_links"]

    if page > 1:
        links["first"] = {"href": f"{base_url}/api/grievances?page=1&size={page_size}"}
        links["prev"] = {"href": f"{base_url}/api/grievances?page={page-1}&size={page_size}"}

    if page < total_pages:
        links["next"] = {"href": f"{base_url}/api/grievances?page={page+1}&size={page_size}"}
        links["last"] = {"href": f"{base_url}/api/grievances?page={total_pages}&size={page_size}"}

    return response


def build_log_collection_response(
    case_id: str,
    entries: List[ResolutionLogEntry],
    base_url: str
) -> Dict[str, Any]:
    """Build HAL collection response for a case's resolution log."""
    return {
        "case_id": case_id,
        "total": len(entries),
        "_embedded": {
            "entries": [entry.to_json() for entry in entries]
        },
        "_links": {
            "self": {"href": f"{base_url}/api/grievances/{case_id}/notes"},
            "case": {"href": f"{base_url}/api/grievances/{case_id}"}
        }
    }


def build_vote_collection_response(
    case_id: str,
    votes: List[Vote],
    base_url: str
) -> Dict[str, Any]:
    """Build HAL collection response for a case's votes."""
    return {
        "case_id": case_id,
        "total": len(votes),
        "_embedded": {
            "votes": [vote.to_json() for vote in votes]
        },
        "_links": {
            "self": {"href": f"{base_url}/api/grievances/{case_id}/votes"},
            "tally": {"href": f"{base_url}/api/grievances/{case_id}/tally"},
            "case": {"href": f"{base_url}/api/grievances/{case_id}"}
        }
    }
