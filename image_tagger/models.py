"""
Data models for the Image Tagger service.
"""

from enum import Enum
from typing import List, Dict, Any, Tuple
from datetime import datetime, timezone
from pydantic import BaseModel, Field


class TagState(str, Enum):
    """Requested state of one tag in a query selection."""
    INCLUDE = "in"
    EXCLUDE = "ex"


# Tags not mentioned in a selection are unconstrained
Selection = Dict[str, TagState]


class Item(BaseModel):
    """One image and its checked tags."""
    name: str  # Image base file name, unique and used as the sort key
    path: str  # Path of the image as scanned
    url: str  # Public path under the image URL prefix
    tag_path: str  # Tag record location (file path, or row key for SQLite)
    tags: List[str] = []  # Checked tags in load order


class TagRecord(BaseModel):
    """Tag record as read from a tag store."""
    location: str
    tags: List[str] = []
    exists: bool = False


class StatGroup(BaseModel):
    """Number of images sharing one exact set of checked tags."""
    signature: str
    tags: Tuple[str, ...] = ()
    count: int = 0
    query: str


class UpdateRequest(BaseModel):
    """Request for replacing the checked tags of an image."""
    name: str
    tags: List[str] = []


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0.0"
    metrics: Dict[str, Any] = {}
