# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the MongoDB case store.

Collections and sessions are mocked; the tests check the queries and
write preconditions the store sends to the driver.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from grievance_api.domain.errors import (
    AlreadyVoted,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    StoreUnavailable
)
from grievance_api.domain.grievances import CaseFilters
from grievance_api.models.entities import Case, ResolutionLogEntry, Vote
from grievance_api.models.enums import CaseStatus, CaseView, NoteType, VoteChoice
from grievance_api.services.mongodb import (
    CASES_COLLECTION,
    LOG_COLLECTION,
    VOTES_COLLECTION,
    GROUP_MEMBERS_COLLECTION,
    USERS_COLLECTION,
    MongoDBService,
    MongoCaseStore,
    MongoDirectory,
    build_case_query,
    _to_document
)


@pytest.fixture
def collections():
    return {
        name: MagicMock(name=name)
        for name in (CASES_COLLECTION, LOG_COLLECTION, VOTES_COLLECTION,
                     GROUP_MEMBERS_COLLECTION, USERS_COLLECTION)
    }


@pytest.fixture
def session():
    session = MagicMock(name="session")
    session.with_transaction.side_effect = lambda callback: callback(session)
    return session


@pytest.fixture
def mongodb_service(collections, session):
    service = MagicMock(spec=MongoDBService)
    service.get_collection.side_effect = lambda name: collections[name]
    service.client = MagicMock()
    service.client.start_session.return_value.__enter__.return_value = session
    return service


@pytest.fixture
def mongo_store(mongodb_service):
    return MongoCaseStore(mongodb_service, use_transactions=True)


@pytest.fixture
def sample_case():
    return Case(
        title="Boundary fence moved",
        description="Fence moved onto my land",
        reporter_id="U1",
        respondent_user_id="U9",
        status=CaseStatus.OPEN
    )


def log_entry(case_id: str) -> ResolutionLogEntry:
    return ResolutionLogEntry(
        case_id=case_id,
        author_id="system",
        note_type=NoteType.NOTE,
        content="Status changed",
        is_system=True
    )


class TestDocumentMapping:
    """Test entity to document conversion."""

    def test_case_document_uses_camel_case_and_enum_values(self, sample_case):
        document = _to_document(sample_case)

        assert document["_id"] == sample_case.id
        assert "id" not in document
        assert document["reporterId"] == "U1"
        assert document["respondentUserId"] == "U9"
        assert document["status"] == "open"
        assert document["version"] == 1

    def test_get_case_round_trips_stored_document(self, mongo_store, collections, sample_case):
        collections[CASES_COLLECTION].find_one.return_value = _to_document(sample_case)

        loaded = mongo_store.get_case(sample_case.id)

        assert loaded == sample_case
        collections[CASES_COLLECTION].find_one.assert_called_once_with({"_id": sample_case.id})

    def test_get_missing_case(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one.return_value = None

        assert mongo_store.get_case("missing") is None


class TestVersionedUpdate:
    """Test version-conditioned case updates."""

    def test_update_filters_on_expected_version(self, mongo_store, collections, session, sample_case):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        stored = _to_document(sample_case)
        stored.update({"status": "under_review", "updatedAt": now, "version": 2})
        collections[CASES_COLLECTION].find_one_and_update.return_value = stored
        entry = log_entry(sample_case.id)

        updated = mongo_store.update_case(
            sample_case.id, 1, {"status": CaseStatus.UNDER_REVIEW, "updated_at": now}, entry
        )

        assert updated.status == CaseStatus.UNDER_REVIEW
        assert updated.version == 2
        collections[CASES_COLLECTION].find_one_and_update.assert_called_once_with(
            {"_id": sample_case.id, "version": 1},
            {"$set": {"status": "under_review", "updatedAt": now}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
            session=session
        )
        inserted = collections[LOG_COLLECTION].insert_one.call_args
        assert inserted.args[0]["caseId"] == sample_case.id
        assert inserted.kwargs["session"] is session

    def test_version_mismatch_raises_conflict(self, mongo_store, collections, sample_case):
        """Two writers read version 3; the second one loses."""
        collections[CASES_COLLECTION].find_one_and_update.return_value = None
        collections[CASES_COLLECTION].find_one.return_value = {"_id": sample_case.id, "version": 4}

        with pytest.raises(Conflict) as exc_info:
            mongo_store.update_case(sample_case.id, 3, {"status": CaseStatus.MEDIATION}, log_entry(sample_case.id))

        assert exc_info.value.expected_version == 3
        assert exc_info.value.current_version == 4
        collections[LOG_COLLECTION].insert_one.assert_not_called()

    def test_missing_case_raises_not_found(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one_and_update.return_value = None
        collections[CASES_COLLECTION].find_one.return_value = None

        with pytest.raises(NotFound):
            mongo_store.update_case("missing", 1, {"status": CaseStatus.MEDIATION})

    def test_without_transactions(self, mongodb_service, collections, sample_case):
        store = MongoCaseStore(mongodb_service, use_transactions=False)
        stored = _to_document(sample_case)
        stored["version"] = 2
        collections[CASES_COLLECTION].find_one_and_update.return_value = stored
        collections[VOTES_COLLECTION].find_one.return_value = None

        store.update_case(sample_case.id, 1, {"mediator_id": "M1"})

        mongodb_service.client.start_session.assert_not_called()
        kwargs = collections[CASES_COLLECTION].find_one_and_update.call_args.kwargs
        assert kwargs["session"] is None

    def test_driver_failure_is_store_unavailable(self, mongo_store, collections, sample_case):
        collections[VOTES_COLLECTION].find_one.return_value = None
        collections[CASES_COLLECTION].find_one_and_update.side_effect = ServerSelectionTimeoutError("timeout")

        with pytest.raises(StoreUnavailable):
            mongo_store.update_case(sample_case.id, 1, {"mediator_id": "M1"})

    def test_insert_case_writes_log_in_same_session(self, mongo_store, collections, session, sample_case):
        mongo_store.insert_case(sample_case, log_entry(sample_case.id))

        assert collections[CASES_COLLECTION].insert_one.call_args.kwargs["session"] is session
        assert collections[LOG_COLLECTION].insert_one.call_args.kwargs["session"] is session


class TestVotes:
    """Test vote persistence."""

    def test_duplicate_key_is_already_voted(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one.return_value = {"_id": "c1", "status": "open"}
        collections[VOTES_COLLECTION].insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(AlreadyVoted):
            mongo_store.insert_vote(Vote(case_id="c1", voter_id="U5", choice=VoteChoice.NEUTRAL))

    def test_find_vote_query(self, mongo_store, collections):
        collections[VOTES_COLLECTION].find_one.return_value = None

        assert mongo_store.find_vote("c1", "U5") is None
        collections[VOTES_COLLECTION].find_one.assert_called_once_with({"caseId": "c1", "voterId": "U5"})

    def test_read_failure_is_store_unavailable(self, mongo_store, collections):
        collections[VOTES_COLLECTION].find.side_effect = ServerSelectionTimeoutError("timeout")

        with pytest.raises(StoreUnavailable):
            mongo_store.list_votes("c1")

    def test_mediator_cannot_vote(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one.return_value = {"_id": "c1", "status": "mediation", "mediatorId": "M1"}

        with pytest.raises(Forbidden):
            mongo_store.insert_vote(Vote(case_id="c1", voter_id="M1", choice=VoteChoice.NEUTRAL))

        collections[VOTES_COLLECTION].insert_one.assert_not_called()

    def test_voter_cannot_become_mediator(self, mongo_store, collections, session):
        collections[VOTES_COLLECTION].find_one.return_value = {"_id": "v1"}

        with pytest.raises(Forbidden):
            mongo_store.update_case("c1", 2, {"mediator_id": "U2"})

        collections[VOTES_COLLECTION].find_one.assert_called_once_with(
            {"caseId": "c1", "voterId": "U2"}, {"_id": 1}, session=session
        )
        collections[CASES_COLLECTION].find_one_and_update.assert_not_called()


class TestClosedCaseWrites:
    """Test that notes and votes re-check the stored status."""

    @pytest.mark.parametrize("status", ["resolved", "dismissed"])
    def test_note_on_closed_case(self, mongo_store, collections, session, status):
        collections[CASES_COLLECTION].find_one.return_value = {"_id": "c1", "status": status}
        entry = ResolutionLogEntry(case_id="c1", author_id="U1", note_type=NoteType.NOTE, content="Late note")

        with pytest.raises(InvalidState):
            mongo_store.append_log_entry(entry)

        collections[CASES_COLLECTION].find_one.assert_called_once_with(
            {"_id": "c1"}, {"status": 1, "mediatorId": 1}, session=session
        )
        collections[LOG_COLLECTION].insert_one.assert_not_called()

    def test_vote_on_closed_case(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one.return_value = {"_id": "c1", "status": "resolved"}

        with pytest.raises(InvalidState):
            mongo_store.insert_vote(Vote(case_id="c1", voter_id="U5", choice=VoteChoice.NEUTRAL))

        collections[VOTES_COLLECTION].insert_one.assert_not_called()

    def test_note_on_open_case_written_in_session(self, mongo_store, collections, session):
        collections[CASES_COLLECTION].find_one.return_value = {"_id": "c1", "status": "mediation"}
        entry = ResolutionLogEntry(case_id="c1", author_id="U1", note_type=NoteType.NOTE, content="Still talking")

        assert mongo_store.append_log_entry(entry) is entry
        assert collections[LOG_COLLECTION].insert_one.call_args.kwargs["session"] is session

    def test_note_on_missing_case(self, mongo_store, collections):
        collections[CASES_COLLECTION].find_one.return_value = None
        entry = ResolutionLogEntry(case_id="missing", author_id="U1", note_type=NoteType.NOTE, content="Hi")

        with pytest.raises(NotFound):
            mongo_store.append_log_entry(entry)


class TestCaseQuery:
    """Test list filters translated to MongoDB queries."""

    def test_all_view(self):
        assert build_case_query(CaseFilters(caller_id="U1")) == {}

    def test_status_and_view(self):
        filters = CaseFilters(status=CaseStatus.MEDIATION, view=CaseView.MEDIATING, caller_id="M1")

        assert build_case_query(filters) == {"status": "mediation", "mediatorId": "M1"}

    def test_against_me(self):
        filters = CaseFilters(view=CaseView.AGAINST_ME, caller_id="U9")

        assert build_case_query(filters) == {"respondentUserId": "U9"}

    def test_list_cases_paginates(self, mongo_store, collections, sample_case):
        cases = collections[CASES_COLLECTION]
        cases.count_documents.return_value = 41
        cases.find.return_value.sort.return_value.skip.return_value.limit.return_value = [
            _to_document(sample_case)
        ]

        result = mongo_store.list_cases(CaseFilters(view=CaseView.MINE, caller_id="U1"), page=3, page_size=20)

        assert result.total == 41
        assert result.total_pages == 3
        assert result.items == [sample_case]
        cases.find.return_value.sort.return_value.skip.assert_called_once_with(40)


class TestMongoDirectory:
    """Test directory lookups."""

    def test_group_members(self, mongodb_service, collections):
        collections[GROUP_MEMBERS_COLLECTION].find.return_value = [{"userId": "U1"}, {"userId": "U3"}]

        assert MongoDirectory(mongodb_service).get_group_members("G1") == ["U1", "U3"]

    def test_certified_mediators(self, mongodb_service, collections):
        collections[USERS_COLLECTION].find.return_value.sort.return_value = [{"_id": "M1"}, {"_id": "U2"}]

        assert MongoDirectory(mongodb_service).list_certified_mediators() == ["M1", "U2"]
        query = collections[USERS_COLLECTION].find.call_args.args[0]
        assert query == {"credentials": "certified_mediator"}


class TestMongoDBService:
    """Test connection handling."""

    @patch('grievance_api.services.mongodb.MongoClient')
    def test_unreachable_server(self, mock_client):
        mock_client.return_value.admin.command.side_effect = ServerSelectionTimeoutError("timeout")
        service = MongoDBService("mongodb://localhost:27017/test", "test")

        with pytest.raises(StoreUnavailable):
            _ = service.client

        health = service.health_check()
        assert health['status'] == 'unhealthy'
        assert health['database'] == 'test'

    @patch('grievance_api.services.mongodb.MongoClient')
    def test_healthy_server(self, mock_client):
        mock_client.return_value.admin.command.return_value = {"ok": 1}
        mock_client.return_value.server_info.return_value = {"version": "7.0.4"}
        service = MongoDBService("mongodb://localhost:27017/test", "test")

        health = service.health_check()

        assert health['status'] == 'healthy'
        assert health['ping'] is True
        assert health['version'] == "7.0.4"

    def test_create_indexes_makes_vote_index_unique(self, collections):
        service = MongoDBService("mongodb://localhost:27017/test", "test")
        service.get_collection = lambda name: collections[name]

        service.create_indexes()

        collections[VOTES_COLLECTION].create_index.assert_called_once_with(
            [("caseId", 1), ("voterId", 1)], unique=True
        )


class TestCreateIndexesScript:
    """Test the index creation entry point."""

    @patch('grievance_api.scripts.create_indexes.close_mongodb_connection')
    @patch('grievance_api.scripts.create_indexes.get_mongodb_service')
    def test_creates_indexes_when_healthy(self, mock_get_service, mock_close):
        from grievance_api.scripts.create_indexes import main

        service = mock_get_service.return_value
        service.health_check.return_value = {"status": "healthy", "version": "7.0", "database": "test"}

        assert main() == 0
        service.create_indexes.assert_called_once_with()
        mock_close.assert_called_once_with()

    @patch('grievance_api.scripts.create_indexes.close_mongodb_connection')
    @patch('grievance_api.scripts.create_indexes.get_mongodb_service')
    def test_unhealthy_store(self, mock_get_service, mock_close):
        from grievance_api.scripts.create_indexes import main

        mock_get_service.return_value.health_check.return_value = {"status": "unhealthy"}

        assert main() == 1
        mock_get_service.return_value.create_indexes.assert_not_called()
