"""
Shared Pydantic types for MongoDB documents.

Documents written by this worker use UUID strings as ``_id``. Rows created by
other services may carry an ObjectId or a native UUID instead; both are read
back as strings.
"""

import uuid
from typing import Annotated, Any

from bson import ObjectId
from pydantic import BeforeValidator


def coerce_document_id(v: Any) -> Any:
    """Convert ObjectId and UUID ids to str before validation."""
    if isinstance(v, (ObjectId, uuid.UUID)):
        return str(v)
    return v


def new_document_id() -> str:
    return str(uuid.uuid4())


# Use for 'id' fields that map to MongoDB's '_id' field
DocumentId = Annotated[str, BeforeValidator(coerce_document_id)]
