# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from typing import List

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['STORE_BACKEND'] = 'memory'
os.environ['BASE_URL'] = 'http://testserver'

from grievance_api.models.entities import CallerContext, CaseEvent, CERTIFIED_MEDIATOR
from grievance_api.models.requests import FileCaseRequest
from grievance_api.services.case_store import InMemoryCaseStore, InMemoryDirectory
from grievance_api.services.notifier import CaseNotifier
from grievance_api.services.workflow import GrievanceWorkflowEngine


class RecordingNotifier(CaseNotifier):
    """Notifier that keeps every event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: List[CaseEvent] = []

    def notify(self, event: CaseEvent) -> None:
        self.events.append(event)


def make_caller(user_id: str, is_admin: bool = False, certified: bool = False) -> CallerContext:
    """Build a caller identity."""
    credentials = [CERTIFIED_MEDIATOR] if certified else []
    return CallerContext(user_id=user_id, is_admin=is_admin, credentials=credentials)


@pytest.fixture
def store():
    """Empty in-memory case store."""
    return InMemoryCaseStore()


@pytest.fixture
def directory():
    """Directory with group G1 = {U1, U3} and certified mediators M1, M2, U2, U3, U4."""
    return InMemoryDirectory(
        groups={"G1": ["U1", "U3"], "G2": ["U7", "U8"]},
        certified_mediators=["M1", "M2", "U2", "U3", "U4"]
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(store, directory, notifier):
    """Workflow engine over the in-memory store."""
    return GrievanceWorkflowEngine(store, directory, notifier=notifier)


@pytest.fixture
def reporter():
    return make_caller("U1")


@pytest.fixture
def respondent():
    return make_caller("U9")


@pytest.fixture
def admin():
    return make_caller("A1", is_admin=True)


@pytest.fixture
def mediator():
    return make_caller("M1", certified=True)


@pytest.fixture
def bystander():
    return make_caller("U5")


@pytest.fixture
def filing_request():
    """Filing against a single respondent user."""
    return FileCaseRequest(
        title="Boundary fence moved",
        description="The fence between our plots was moved two metres onto my land.",
        category="land_dispute",
        priority="high",
        respondent_user_id="U9",
        location="North field",
        evidence_refs=["photo-001", "survey-2023"]
    )


@pytest.fixture
def open_case(engine, reporter, filing_request):
    """Freshly filed case at version 1."""
    return engine.file_case(reporter, filing_request)


@pytest.fixture
def mediated_case(engine, open_case, admin):
    """Case with mediator M1 assigned, moved into mediation."""
    case = engine.assign_mediator(open_case.id, "M1", admin)
    return engine.advance_status(case.id, admin, "mediation")
