"""Shared test fixtures."""

import pytest

from mail_dispatch.models import (
    AttachmentCatalog,
    CatalogFile,
    FileCategory,
    Job,
    MessageTemplate,
    RecipientRecord,
    RecipientRole,
    TemplateCategory,
    TransportConfig,
)
from mail_dispatch.queue import JobQueue
from mail_dispatch.transports.mock import MockTransport
from mail_dispatch.worker import DispatchWorker


@pytest.fixture
def sample_recipients():
    """Two groups; 3000-AT502 has all three roles."""
    return [
        RecipientRecord("3000-AT502", "a@x.com", RecipientRole.PRIMARY, "Acme", "30 days"),
        RecipientRecord("3000-AT502", "b@x.com", RecipientRole.OBSERVER),
        RecipientRecord("3000-AT502", "c@x.com", RecipientRole.SILENT),
        RecipientRecord("3000-BX100", "d@y.com", RecipientRole.PRIMARY, "Beta Ltd"),
    ]


@pytest.fixture
def attachment_files(tmp_path):
    """Real files on disk for the catalog."""
    files = {}
    for name in ("3000-AT502 INV 12345.pdf", "3000-AT502 SOA 12345.pdf", "3000-BX100 OD 5555.pdf"):
        path = tmp_path / name
        path.write_bytes(b"%PDF-1.4 test")
        files[name] = path
    return files


@pytest.fixture
def sample_catalog(attachment_files):
    """Catalog built from the attachment files."""
    def entry(name, category, code):
        path = attachment_files[name]
        return CatalogFile(name, str(path), category, code, path.stat().st_size)

    return AttachmentCatalog.from_files({
        "3000-AT502": [
            entry("3000-AT502 INV 12345.pdf", FileCategory.INVOICE, "12345"),
            entry("3000-AT502 SOA 12345.pdf", FileCategory.STATEMENT, "12345"),
        ],
        "3000-BX100": [entry("3000-BX100 OD 5555.pdf", FileCategory.OVERDUE, "5555")],
    })


@pytest.fixture
def soa_template():
    """Template with every placeholder."""
    return MessageTemplate(
        category=TemplateCategory.SOA_INV,
        subject="SOA {debtor code} - {organization name}",
        body="Terms: {notes}",
    )


@pytest.fixture
def transport_config():
    """Sender settings with one always-cc address."""
    return TransportConfig(
        host="smtp.example.com",
        port=587,
        username="user@example.com",
        password="secret",
        from_email="billing@example.com",
        from_name="Billing",
        always_cc=("audit@example.com",),
    )


@pytest.fixture
def make_job(sample_recipients, sample_catalog, soa_template, transport_config):
    """Factory for jobs using the sample data."""
    def factory(**overrides):
        values = dict(
            recipients=sample_recipients,
            catalog=sample_catalog,
            template=soa_template,
            transport=transport_config,
        )
        values.update(overrides)
        return Job(**values)

    return factory


@pytest.fixture
def queue():
    return JobQueue()


@pytest.fixture
def sleeps():
    """Delays requested by the worker's backoff."""
    return []


@pytest.fixture
def make_worker(queue, sleeps):
    """Worker whose backoff sleep is recorded instead of waited on."""
    def factory(transport=None, **kwargs):
        def record_sleep(delay):
            sleeps.append(delay)
            return False

        kwargs.setdefault("sleep", record_sleep)
        return DispatchWorker(queue, transport or MockTransport(), **kwargs)

    return factory
