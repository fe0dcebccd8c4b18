"""Data models for mail dispatch."""

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_file_size(size: int) -> str:
    """Render a byte count as B, KB or MB."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024.0:.2f} KB"
    return f"{size / (1024.0 * 1024.0):.2f} MB"


class RecipientRole(str, Enum):
    """Visibility tier of a recipient within a group message."""

    PRIMARY = "to"
    OBSERVER = "cc"
    SILENT = "bcc"


@dataclass(frozen=True)
class RecipientRecord:
    """One row of the recipient list."""

    group_key: str
    email: str
    role: RecipientRole = RecipientRole.PRIMARY
    organization_name: Optional[str] = None
    notes: Optional[str] = None


class FileCategory(str, Enum):
    """Document type encoded in an attachment file name."""

    INVOICE = "INV"
    STATEMENT = "SOA"
    OVERDUE = "OD"
    OTHER = "OTHER"


@dataclass(frozen=True)
class CatalogFile:
    """A categorized attachment file."""

    file_name: str
    file_path: str
    category: FileCategory
    custom_code: str = ""
    file_size: int = 0

    @property
    def size_formatted(self) -> str:
        return format_file_size(self.file_size)


@dataclass(frozen=True)
class CatalogEntry:
    """All categorized files belonging to one group key."""

    group_key: str
    files: Tuple[CatalogFile, ...] = ()

    def files_in(self, category: FileCategory) -> List[CatalogFile]:
        return [f for f in self.files if f.category == category]

    @property
    def total_size(self) -> int:
        return sum(f.file_size for f in self.files)

    def counts(self) -> Dict[str, int]:
        """Number of files per category."""
        return {category.value: len(self.files_in(category)) for category in FileCategory}


class AttachmentCatalog:
    """Read-only mapping from group key to its categorized files.

    Lookups are case-insensitive; keys are stored upper-cased.
    """

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        self._entries: Dict[str, CatalogEntry] = {}
        for entry in entries:
            key = entry.group_key.upper()
            existing = self._entries.get(key)
            if existing is not None:
                entry = CatalogEntry(group_key=existing.group_key, files=existing.files + entry.files)
            self._entries[key] = entry

    @classmethod
    def from_files(cls, files_by_key: Mapping[str, Iterable[CatalogFile]]) -> "AttachmentCatalog":
        return cls(CatalogEntry(group_key=key, files=tuple(files)) for key, files in files_by_key.items())

    def get(self, group_key: str) -> Optional[CatalogEntry]:
        if group_key is None:
            return None
        return self._entries.get(group_key.strip().upper())

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, group_key: object) -> bool:
        return isinstance(group_key, str) and self.get(group_key) is not None

    def __iter__(self) -> Iterator[CatalogEntry]:
        return (self._entries[key] for key in self.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AttachmentCatalog(groups={len(self)})"


class TemplateCategory(str, Enum):
    """Which attachment categories accompany a template."""

    SOA_INV = "soa_inv"
    OVERDUE = "overdue"


ORGANIZATION_PLACEHOLDER = "{organization name}"
NOTES_PLACEHOLDER = "{notes}"
GROUP_KEY_PLACEHOLDER = "{debtor code}"


@dataclass(frozen=True)
class MessageTemplate:
    """Subject and body patterns containing placeholder tokens."""

    category: TemplateCategory
    subject: str
    body: str
    period: str = ""


@dataclass(frozen=True)
class TransportConfig:
    """Connection and sender settings handed to a transport."""

    host: str = "localhost"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    use_ssl: bool = True
    timeout_seconds: int = 30
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    always_cc: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["always_cc"] = list(self.always_cc)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TransportConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["always_cc"] = tuple(values.get("always_cc") or ())
        return cls(**values)


@dataclass
class OutboundMessage:
    """A fully resolved message ready for a transport."""

    sender_email: str
    subject: str
    body: str
    sender_name: Optional[str] = None
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    attachments: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not (self.to or self.cc or self.bcc):
            raise ValueError("Message must have at least one recipient")

    @property
    def all_recipients(self) -> List[str]:
        return self.to + self.cc + self.bcc


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error)


class JobStatus(str, Enum):
    """Lifecycle state of a dispatch job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class GroupResult:
    """Outcome recorded for one recipient group."""

    group_key: str
    recipients: Tuple[str, ...] = ()
    message: str = ""
    attempts: int = 0
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "group_key": self.group_key,
            "recipients": list(self.recipients),
            "message": self.message,
            "attempts": self.attempts,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SendSummary:
    """Per-group outcomes in processing order."""

    sent: List[GroupResult] = field(default_factory=list)
    failed: List[GroupResult] = field(default_factory=list)
    skipped: List[GroupResult] = field(default_factory=list)

    def copy(self) -> "SendSummary":
        return SendSummary(sent=list(self.sent), failed=list(self.failed), skipped=list(self.skipped))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sent": [r.to_dict() for r in self.sent],
            "failed": [r.to_dict() for r in self.failed],
            "skipped": [r.to_dict() for r in self.skipped],
        }


@dataclass
class Job:
    """One submitted send request and its live progress."""

    recipients: Tuple[RecipientRecord, ...] = ()
    catalog: AttachmentCatalog = field(default_factory=AttachmentCatalog)
    template: Optional[MessageTemplate] = None
    transport: TransportConfig = field(default_factory=TransportConfig)
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_groups: int = 0
    sent_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    current_group: str = ""
    results: SendSummary = field(default_factory=SendSummary)
    error_message: Optional[str] = None

    def __post_init__(self):
        self.recipients = tuple(self.recipients)

    @property
    def processed_count(self) -> int:
        return self.sent_count + self.failed_count + self.skipped_count

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "Job":
        """Copy of the mutable progress state; immutable inputs are shared."""
        return dataclasses.replace(self, results=self.results.copy())

    def to_dict(self, include_results: bool = True) -> Dict[str, Any]:
        """Progress view suitable for JSON output."""
        data = {
            "job_id": self.job_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_groups": self.total_groups,
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "current_group": self.current_group,
            "error_message": self.error_message,
        }
        if include_results:
            data["results"] = self.results.to_dict()
        return data
