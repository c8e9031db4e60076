# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""
    
    model_config = ConfigDict(
        # Stored documents use camelCase keys, Python code uses field names
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        arbitrary_types_allowed=True
    )
    
    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")
    
    def to_document(self) -> dict:
        """Serialize to a camelCase document for persistence."""
        document = self.model_dump(by_alias=True, mode="python")
        for key, value in document.items():
            if isinstance(value, Enum):
                document[key] = value.value
        return document
    
    def to_json(self) -> dict:
        """Serialize to a JSON-compatible dictionary for API responses."""
        return self.model_dump(mode="json")
