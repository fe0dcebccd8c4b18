"""Grouped bulk mail dispatch with attachment catalogs, retry and live progress."""

__version__ = "0.1.0"

from .exceptions import (
    DispatchError,
    ConfigurationError,
    TemplateError,
    RecipientError,
    CatalogError,
    TransportError,
    QueueError,
)
from .models import (
    AttachmentCatalog,
    CatalogEntry,
    CatalogFile,
    DeliveryResult,
    FileCategory,
    GroupResult,
    Job,
    JobStatus,
    MessageTemplate,
    OutboundMessage,
    RecipientRecord,
    RecipientRole,
    SendSummary,
    TemplateCategory,
    TransportConfig,
)
from .grouping import RecipientGroup, group_recipients
from .attachments import resolve_attachments
from .composer import compose_message
from .queue import JobQueue
from .worker import DispatchWorker
from .service import DispatchService
from .transports import MockTransport, SmtpTransport

__all__ = [
    "DispatchError",
    "ConfigurationError",
    "TemplateError",
    "RecipientError",
    "CatalogError",
    "TransportError",
    "QueueError",
    "AttachmentCatalog",
    "CatalogEntry",
    "CatalogFile",
    "DeliveryResult",
    "FileCategory",
    "GroupResult",
    "Job",
    "JobStatus",
    "MessageTemplate",
    "OutboundMessage",
    "RecipientRecord",
    "RecipientRole",
    "SendSummary",
    "TemplateCategory",
    "TransportConfig",
    "RecipientGroup",
    "group_recipients",
    "resolve_attachments",
    "compose_message",
    "JobQueue",
    "DispatchWorker",
    "DispatchService",
    "MockTransport",
    "SmtpTransport",
]
