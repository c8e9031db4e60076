# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB case store with connection pooling and versioned writes.
"""

import os
import logging
from contextlib import contextmanager
from enum import Enum
from typing import List, Dict, Optional, Any
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError
)
from pydantic.alias_generators import to_camel
from opentelemetry import trace

from ..domain.errors import AlreadyVoted, Conflict, Forbidden, InvalidState, NotFound, StoreUnavailable
from ..domain.grievances import CaseFilters
from ..models.entities import Case, ResolutionLogEntry, Vote, CERTIFIED_MEDIATOR
from ..models.enums import CaseStatus, CaseView
from .case_store import CaseStore, Directory, PaginationResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CASES_COLLECTION = "grievances"
LOG_COLLECTION = "resolution_log"
VOTES_COLLECTION = "grievance_votes"
GROUP_MEMBERS_COLLECTION = "group_members"
USERS_COLLECTION = "users"


class MongoDBService:
    """MongoDB connection holder with connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/grievances_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'grievances_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise StoreUnavailable(f"MongoDB is unreachable: {e}")

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except (PyMongoError, StoreUnavailable) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def create_indexes(self) -> None:
        """Create indexes for all grievance collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            cases = self.get_collection(CASES_COLLECTION)
            cases.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            cases.create_index([("reporterId", ASCENDING), ("createdAt", DESCENDING)])
            cases.create_index([("respondentUserId", ASCENDING), ("createdAt", DESCENDING)])
            cases.create_index([("respondentGroupId", ASCENDING)])
            cases.create_index([("mediatorId", ASCENDING), ("createdAt", DESCENDING)])

            log_entries = self.get_collection(LOG_COLLECTION)
            log_entries.create_index([("caseId", ASCENDING), ("createdAt", ASCENDING)])

            # One vote per voter per case
            votes = self.get_collection(VOTES_COLLECTION)
            votes.create_index([("caseId", ASCENDING), ("voterId", ASCENDING)], unique=True)

            members = self.get_collection(GROUP_MEMBERS_COLLECTION)
            members.create_index([("groupId", ASCENDING), ("userId", ASCENDING)], unique=True)

            users = self.get_collection(USERS_COLLECTION)
            users.create_index("credentials")

            logger.info("MongoDB indexes created successfully")

        except PyMongoError as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


@contextmanager
def _store_errors(operation: str):
    """Translate driver failures into StoreUnavailable."""
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}", extra={
            "extra_fields": {"operation": operation, "error_type": type(e).__name__}
        })
        raise StoreUnavailable(f"Case store unavailable during {operation}")


def _to_document(entity) -> Dict[str, Any]:
    document = entity.to_document()
    document["_id"] = document.pop("id")
    return document


def _from_document(model, document: Dict[str, Any]):
    data = dict(document)
    data["id"] = str(data.pop("_id"))
    return model.model_validate(data)


def _to_update_document(updates: Dict[str, object]) -> Dict[str, object]:
    """Map field-name updates onto stored camelCase keys."""
    return {
        to_camel(field): value.value if isinstance(value, Enum) else value
        for field, value in updates.items()
    }


def build_case_query(filters: CaseFilters) -> Dict[str, Any]:
    """Build a MongoDB query from case filters."""
    query: Dict[str, Any] = {}

    if filters.status is not None:
        query["status"] = filters.status.value if isinstance(filters.status, Enum) else filters.status

    view = CaseView(filters.view)
    if view == CaseView.MINE:
        query["reporterId"] = filters.caller_id
    elif view == CaseView.AGAINST_ME:
        query["respondentUserId"] = filters.caller_id
    elif view == CaseView.MEDIATING:
        query["mediatorId"] = filters.caller_id

    return query


class MongoCaseStore(CaseStore):
    """
    Case store backed by MongoDB.

    Case updates use find_one_and_update filtered on the expected version and
    run in a multi-document transaction with their log entry. Vote
    uniqueness relies on the unique (caseId, voterId) index. Notes and votes
    re-read the case status in the same transaction before they are written.
    """

    def __init__(self, mongodb_service: MongoDBService, use_transactions: bool = None):
        self.mongodb = mongodb_service
        if use_transactions is None:
            use_transactions = os.getenv('MONGODB_USE_TRANSACTIONS', 'true').lower() == 'true'
        self.use_transactions = use_transactions

    @property
    def cases(self) -> Collection:
        return self.mongodb.get_collection(CASES_COLLECTION)

    @property
    def log_entries(self) -> Collection:
        return self.mongodb.get_collection(LOG_COLLECTION)

    @property
    def votes(self) -> Collection:
        return self.mongodb.get_collection(VOTES_COLLECTION)

    def _run_unit_of_work(self, callback):
        """Run callback(session) in a transaction when enabled."""
        if not self.use_transactions:
            return callback(None)

        with self.mongodb.client.start_session() as session:
            return session.with_transaction(callback)

    def _require_open_case(self, case_id: str, session) -> Dict[str, Any]:
        document = self.cases.find_one({"_id": case_id}, {"status": 1, "mediatorId": 1}, session=session)
        if document is None:
            raise NotFound(f"Case {case_id} not found")

        status = CaseStatus(document["status"])
        if status.is_terminal:
            raise InvalidState(f"Case is {status.value}; the resolution log is closed")
        return document

    def insert_case(self, case: Case, log_entry: Optional[ResolutionLogEntry] = None) -> Case:
        with tracer.start_as_current_span("store.mongodb.insert_case") as span:
            span.set_attribute("case.id", case.id)

            def _insert(session):
                self.cases.insert_one(_to_document(case), session=session)
                if log_entry is not None:
                    self.log_entries.insert_one(_to_document(log_entry), session=session)

            with _store_errors("insert_case"):
                self._run_unit_of_work(_insert)

            logger.info(f"Created case {case.id}")
            return case

    def get_case(self, case_id: str) -> Optional[Case]:
        with _store_errors("get_case"):
            document = self.cases.find_one({"_id": case_id})

        if document is None:
            logger.debug(f"Case {case_id} not found")
            return None
        return _from_document(Case, document)

    def list_cases(self, filters: CaseFilters, page: int = 1, page_size: int = 20) -> PaginationResult:
        query = build_case_query(filters)
        skip = (page - 1) * page_size

        with _store_errors("list_cases"):
            total = self.cases.count_documents(query)
            cursor = self.cases.find(query).sort("createdAt", DESCENDING).skip(skip).limit(page_size)
            documents = list(cursor)

        logger.debug(f"Listed {len(documents)} cases (page {page})")
        return PaginationResult([_from_document(Case, doc) for doc in documents], total, page, page_size)

    def update_case(
        self,
        case_id: str,
        expected_version: int,
        updates: Dict[str, object],
        log_entry: Optional[ResolutionLogEntry] = None
    ) -> Case:
        with tracer.start_as_current_span("store.mongodb.update_case") as span:
            span.set_attributes({
                "case.id": case_id,
                "case.expected_version": expected_version
            })
            set_document = _to_update_document(updates)
            mediator_id = updates.get("mediator_id")

            def _update(session):
                if mediator_id and self.votes.find_one(
                    {"caseId": case_id, "voterId": mediator_id}, {"_id": 1}, session=session
                ):
                    raise Forbidden(f"User {mediator_id} holds a vote on case {case_id}")

                document = self.cases.find_one_and_update(
                    {"_id": case_id, "version": expected_version},
                    {"$set": set_document, "$inc": {"version": 1}},
                    return_document=ReturnDocument.AFTER,
                    session=session
                )

                if document is None:
                    current = self.cases.find_one({"_id": case_id}, {"version": 1}, session=session)
                    if current is None:
                        raise NotFound(f"Case {case_id} not found")
                    raise Conflict(case_id, expected_version, current.get("version"))

                if log_entry is not None:
                    self.log_entries.insert_one(_to_document(log_entry), session=session)

                return document

            try:
                with _store_errors("update_case"):
                    document = self._run_unit_of_work(_update)
            except Conflict:
                span.set_attribute("store.result", "conflict")
                raise

            span.set_attribute("store.result", "committed")
            return _from_document(Case, document)

    def append_log_entry(self, entry: ResolutionLogEntry) -> ResolutionLogEntry:
        def _append(session):
            self._require_open_case(entry.case_id, session)
            self.log_entries.insert_one(_to_document(entry), session=session)

        with _store_errors("append_log_entry"):
            self._run_unit_of_work(_append)
        return entry

    def list_log_entries(self, case_id: str) -> List[ResolutionLogEntry]:
        with _store_errors("list_log_entries"):
            documents = list(
                self.log_entries.find({"caseId": case_id}).sort([("createdAt", ASCENDING), ("_id", ASCENDING)])
            )
        return [_from_document(ResolutionLogEntry, doc) for doc in documents]

    def insert_vote(self, vote: Vote) -> Vote:
        def _insert(session):
            document = self._require_open_case(vote.case_id, session)
            if document.get("mediatorId") == vote.voter_id:
                raise Forbidden("The mediator cannot vote on the case")
            self.votes.insert_one(_to_document(vote), session=session)

        try:
            with _store_errors("insert_vote"):
                self._run_unit_of_work(_insert)
        except DuplicateKeyError:
            raise AlreadyVoted(vote.case_id, vote.voter_id)
        return vote

    def find_vote(self, case_id: str, voter_id: str) -> Optional[Vote]:
        with _store_errors("find_vote"):
            document = self.votes.find_one({"caseId": case_id, "voterId": voter_id})
        return _from_document(Vote, document) if document else None

    def list_votes(self, case_id: str) -> List[Vote]:
        with _store_errors("list_votes"):
            documents = list(self.votes.find({"caseId": case_id}).sort("createdAt", ASCENDING))
        return [_from_document(Vote, doc) for doc in documents]

    def health_check(self) -> Dict[str, Any]:
        health = self.mongodb.health_check()
        health["backend"] = "mongodb"
        return health


class MongoDirectory(Directory):
    """Group membership and credential lookups from MongoDB."""

    def __init__(self, mongodb_service: MongoDBService):
        self.mongodb = mongodb_service

    def get_group_members(self, group_id: str) -> List[str]:
        with _store_errors("get_group_members"):
            documents = self.mongodb.get_collection(GROUP_MEMBERS_COLLECTION).find(
                {"groupId": group_id}, {"userId": 1}
            )
            return [doc["userId"] for doc in documents]

    def list_certified_mediators(self) -> List[str]:
        with _store_errors("list_certified_mediators"):
            documents = self.mongodb.get_collection(USERS_COLLECTION).find(
                {"credentials": CERTIFIED_MEDIATOR}, {"_id": 1}
            ).sort("_id", ASCENDING)
            return [str(doc["_id"]) for doc in documents]


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
