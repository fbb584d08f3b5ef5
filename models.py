"""
Records passed between the scanner, the result store and the job layer.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional

SCOPE_ALL = "ALL"
SCOPE_CUSTOM = "CUSTOM"


@dataclass
class ChatLocation:
    application_name: str
    absolute_path: str


@dataclass
class ScanSummary:
    git_repo_count: int = 0
    document_count: int = 0
    chat_locations: list[ChatLocation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ScanSummary":
        return cls(
            git_repo_count=int(data.get("git_repo_count", 0)),
            document_count=int(data.get("document_count", 0)),
            chat_locations=[ChatLocation(**c) for c in data.get("chat_locations", [])],
        )


@dataclass
class ScanResultItem:
    id: str
    project_id: str
    file_path: str
    file_type: str
    source: str
    created_at: Optional[str]
    modified_at: Optional[str]
    size_bytes: int
    is_valid: bool
    inserted_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Project:
    id: str
    name: str
    folder_path: str
    time_range: str = ""
    scan_scope: str = SCOPE_ALL
    scan_folders: list[str] = field(default_factory=list)
    scan_summary: Optional[ScanSummary] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
