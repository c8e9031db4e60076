# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the transition authority.
"""

import pytest
from datetime import datetime, timezone

from grievance_api.domain.transitions import (
    TRANSITION_TABLE,
    ERROR_FORBIDDEN,
    ERROR_INVALID_STATE,
    ERROR_INVALID_TRANSITION,
    resolve_role,
    authorize_transition,
    available_transitions,
    validate_resolution_text,
    plan_transition,
    allowed_note_types,
    authorize_note_type
)
from grievance_api.models.entities import Case
from grievance_api.models.enums import CaseStatus, CaseRole, NoteType

from conftest import make_caller


def build_case(**overrides) -> Case:
    data = {
        "title": "Water access",
        "description": "Irrigation channel blocked upstream",
        "reporter_id": "U1",
        "respondent_user_id": "U9",
        "mediator_id": "M1",
        "status": CaseStatus.OPEN
    }
    data.update(overrides)
    return Case(**data)


class TestResolveRole:
    """Test role derivation from case fields and caller identity."""

    def test_reporter(self):
        assert resolve_role(build_case(), make_caller("U1")) == CaseRole.REPORTER

    def test_respondent_user(self):
        assert resolve_role(build_case(), make_caller("U9")) == CaseRole.RESPONDENT

    def test_respondent_group_member(self):
        case = build_case(respondent_user_id=None, respondent_group_id="G1")
        assert resolve_role(case, make_caller("U3"), ["U3", "U4"]) == CaseRole.RESPONDENT

    def test_mediator(self):
        assert resolve_role(build_case(), make_caller("M1")) == CaseRole.MEDIATOR

    def test_administrator(self):
        assert resolve_role(build_case(), make_caller("A1", is_admin=True)) == CaseRole.ADMINISTRATOR

    def test_uninvolved(self):
        assert resolve_role(build_case(), make_caller("U5")) == CaseRole.UNINVOLVED

    def test_party_role_takes_precedence_over_admin(self):
        """An administrator who filed the case acts as reporter."""
        assert resolve_role(build_case(), make_caller("U1", is_admin=True)) == CaseRole.REPORTER

    def test_mediator_takes_precedence_over_admin(self):
        assert resolve_role(build_case(), make_caller("M1", is_admin=True)) == CaseRole.MEDIATOR

    def test_reporter_in_respondent_group_is_reporter(self):
        case = build_case(respondent_user_id=None, respondent_group_id="G1")
        assert resolve_role(case, make_caller("U1"), ["U1", "U3"]) == CaseRole.REPORTER


class TestAuthorizeTransition:
    """Test the transition table checks."""

    @pytest.mark.parametrize("edge,roles", list(TRANSITION_TABLE.items()))
    def test_table_edges_allowed_for_listed_roles(self, edge, roles):
        from_status, to_status = edge
        for role in roles:
            assert authorize_transition(from_status, role, to_status).allowed

    def test_unlisted_role_forbidden(self):
        decision = authorize_transition(CaseStatus.OPEN, CaseRole.RESPONDENT, CaseStatus.UNDER_REVIEW)

        assert not decision.allowed
        assert decision.error_kind == ERROR_FORBIDDEN

    def test_reporter_cannot_request_mediation(self):
        decision = authorize_transition(CaseStatus.OPEN, CaseRole.REPORTER, CaseStatus.MEDIATION)

        assert decision.error_kind == ERROR_FORBIDDEN

    def test_pair_outside_table(self):
        decision = authorize_transition(CaseStatus.OPEN, CaseRole.ADMINISTRATOR, CaseStatus.RESOLVED)

        assert not decision.allowed
        assert decision.error_kind == ERROR_INVALID_TRANSITION
        assert "open" in decision.reason and "resolved" in decision.reason

    def test_open_cannot_be_dismissed(self):
        decision = authorize_transition(CaseStatus.OPEN, CaseRole.MEDIATOR, CaseStatus.DISMISSED)

        assert decision.error_kind == ERROR_INVALID_TRANSITION

    @pytest.mark.parametrize("terminal", [CaseStatus.RESOLVED, CaseStatus.DISMISSED])
    def test_terminal_status_is_invalid_state(self, terminal):
        for requested in CaseStatus:
            decision = authorize_transition(terminal, CaseRole.ADMINISTRATOR, requested)
            assert decision.error_kind == ERROR_INVALID_STATE

    def test_available_transitions(self):
        assert available_transitions(CaseStatus.OPEN, CaseRole.REPORTER) == [CaseStatus.UNDER_REVIEW]
        assert available_transitions(CaseStatus.UNDER_REVIEW, CaseRole.MEDIATOR) == [
            CaseStatus.MEDIATION,
            CaseStatus.DISMISSED
        ]
        assert available_transitions(CaseStatus.MEDIATION, CaseRole.UNINVOLVED) == []
        assert available_transitions(CaseStatus.RESOLVED, CaseRole.ADMINISTRATOR) == []


class TestPlanTransition:
    """Test transition planning and resolution text rules."""

    def test_resolution_text_required_when_resolving(self):
        assert validate_resolution_text(CaseStatus.RESOLVED, None)
        assert validate_resolution_text(CaseStatus.RESOLVED, "   ")
        assert validate_resolution_text(CaseStatus.RESOLVED, "Fence returned") is None

    def test_resolution_text_refused_for_other_targets(self):
        assert validate_resolution_text(CaseStatus.DISMISSED, "anything")
        assert validate_resolution_text(CaseStatus.MEDIATION, None) is None

    def test_plan_status_change(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        case = build_case()

        plan = plan_transition(case, CaseRole.REPORTER, CaseStatus.UNDER_REVIEW, "U1", now)

        assert plan.updates == {"status": CaseStatus.UNDER_REVIEW, "updated_at": now}
        assert plan.note_type == NoteType.NOTE
        assert plan.log_content == "Status changed from open to under_review by reporter U1"

    def test_plan_resolution(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        case = build_case(status=CaseStatus.MEDIATION)

        plan = plan_transition(case, CaseRole.MEDIATOR, CaseStatus.RESOLVED, "M1", now, "  Fence returned  ")

        assert plan.updates["resolution_text"] == "Fence returned"
        assert plan.updates["resolved_at"] == now
        assert plan.note_type == NoteType.DECISION
        assert plan.log_content == "Status changed from mediation to resolved by mediator M1"


class TestNoteTypes:
    """Test note type permissions per role."""

    def test_mediator_note_types(self):
        assert allowed_note_types(CaseRole.MEDIATOR) == [NoteType.MEDIATION, NoteType.DECISION]

    def test_reporter_note_types(self):
        assert allowed_note_types(CaseRole.REPORTER) == [NoteType.NOTE, NoteType.ESCALATION]

    def test_respondent_and_uninvolved_note_types(self):
        expected = [NoteType.RESPONSE, NoteType.PROPOSAL]
        assert allowed_note_types(CaseRole.RESPONDENT) == expected
        assert allowed_note_types(CaseRole.UNINVOLVED) == expected

    def test_mediator_cannot_escalate(self):
        decision = authorize_note_type(CaseRole.MEDIATOR, NoteType.ESCALATION)

        assert not decision.allowed
        assert decision.error_kind == ERROR_FORBIDDEN

    def test_administrator_may_record_decision(self):
        assert authorize_note_type(CaseRole.ADMINISTRATOR, NoteType.DECISION).allowed
