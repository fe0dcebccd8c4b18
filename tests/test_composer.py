"""Tests for message composition."""

import pytest

from mail_dispatch.composer import (
    DEFAULT_SENDER_EMAIL,
    DEFAULT_SENDER_NAME,
    compose_message,
    placeholder_values,
    substitute_placeholders,
)
from mail_dispatch.models import (
    MessageTemplate,
    OutboundMessage,
    RecipientRecord,
    RecipientRole,
    TemplateCategory,
    TransportConfig,
)


class TestPlaceholders:
    """Tests for placeholder substitution."""

    def test_values_from_first_member(self, sample_recipients):
        """Test that organization and notes come from the first member."""
        values = placeholder_values("3000-AT502", sample_recipients[:3])

        assert values["{organization name}"] == "Acme"
        assert values["{notes}"] == "30 days"
        assert values["{debtor code}"] == "3000-AT502"

    def test_absent_fields_keep_placeholder(self):
        """Test that missing or blank fields leave the literal token."""
        members = [RecipientRecord("K-1", "a@x.com", organization_name="  ", notes=None)]

        values = placeholder_values("K-1", members)

        assert values["{organization name}"] == "{organization name}"
        assert values["{notes}"] == "{notes}"

    def test_replaces_every_occurrence(self):
        """Test that repeated placeholders are all replaced."""
        text = "{debtor code} / {debtor code}"

        assert substitute_placeholders(text, {"{debtor code}": "K-1"}) == "K-1 / K-1"


class TestComposeMessage:
    """Tests for compose_message."""

    def test_partitions_roles(self, soa_template, sample_recipients, transport_config):
        """Test that members land in To, Cc and Bcc by role."""
        message = compose_message(
            soa_template, "3000-AT502", sample_recipients[:3], ["/d/inv.pdf"], transport_config
        )

        assert message.to == ["a@x.com"]
        assert message.cc == ["b@x.com", "audit@example.com"]
        assert message.bcc == ["c@x.com"]
        assert message.subject == "SOA 3000-AT502 - Acme"
        assert message.body == "Terms: 30 days"
        assert message.attachments == ["/d/inv.pdf"]

    def test_sender_from_config(self, soa_template, sample_recipients, transport_config):
        """Test that the configured sender is used."""
        message = compose_message(soa_template, "3000-AT502", sample_recipients[:1], [], transport_config)

        assert message.sender_email == "billing@example.com"
        assert message.sender_name == "Billing"

    def test_sender_falls_back_to_username_then_default(self, soa_template, sample_recipients):
        """Test the sender fallbacks."""
        with_user = compose_message(
            soa_template, "K", sample_recipients[:1], [], TransportConfig(username="login@example.com")
        )
        bare = compose_message(soa_template, "K", sample_recipients[:1], [], TransportConfig())

        assert with_user.sender_email == "login@example.com"
        assert bare.sender_email == DEFAULT_SENDER_EMAIL
        assert bare.sender_name == DEFAULT_SENDER_NAME

    def test_always_cc_skips_duplicates_and_invalid(self, soa_template):
        """Test that always-cc does not repeat addresses or add invalid ones."""
        members = [
            RecipientRecord("K-1", "a@x.com"),
            RecipientRecord("K-1", "audit@example.com", RecipientRole.OBSERVER),
        ]
        config = TransportConfig(always_cc=("AUDIT@example.com", "not-an-address", " ", "boss@example.com"))

        message = compose_message(soa_template, "K-1", members, [], config)

        assert message.cc == ["audit@example.com", "boss@example.com"]

    def test_duplicate_attachments_removed(self, soa_template, sample_recipients, transport_config):
        """Test that each attachment path appears once."""
        message = compose_message(
            soa_template, "K", sample_recipients[:1], ["/a.pdf", "/b.pdf", "/a.pdf"], transport_config
        )

        assert message.attachments == ["/a.pdf", "/b.pdf"]

    def test_group_without_primary_recipient(self, transport_config):
        """Test that a group with only observers still gets a message."""
        template = MessageTemplate(TemplateCategory.OVERDUE, "s", "b")
        members = [RecipientRecord("K-1", "watch@x.com", RecipientRole.OBSERVER)]

        message = compose_message(template, "K-1", members, [], transport_config)

        assert message.to == []
        assert "watch@x.com" in message.all_recipients

    def test_message_requires_recipient(self):
        """Test that a message with no recipients is rejected."""
        with pytest.raises(ValueError):
            OutboundMessage(sender_email="s@x.com", subject="s", body="b")
