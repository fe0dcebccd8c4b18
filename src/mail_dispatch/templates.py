"""Stock message templates and template files."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import jinja2
import yaml

from .composer import placeholder_values, substitute_placeholders
from .exceptions import TemplateError
from .grouping import RecipientGroup
from .models import (
    GROUP_KEY_PLACEHOLDER,
    NOTES_PLACEHOLDER,
    ORGANIZATION_PLACEHOLDER,
    MessageTemplate,
    TemplateCategory,
)

UNSET_PERIOD = "<SET PERIOD>"

_SUBJECTS = {
    TemplateCategory.SOA_INV: "INVOICE AND SOA {{ period }} - {{ debtor_code }} - {{ organization }}",
    TemplateCategory.OVERDUE: "Reminder overdue account - {{ organization }} - {{ debtor_code }}",
}

_BODIES = {
    TemplateCategory.SOA_INV: """Good day to you
The attached statement reflects your account balance.

Please check the statement provided.

If you have any questions regarding this statement or need any clarification, please contact our careline.

Any overdue payment may lead to service interruption.

***************************************************************************

This is an auto-generated email, please DO NOT REPLY. Any replies to this
email will be disregarded.

***************************************************************************""",
    TemplateCategory.OVERDUE: """Good day to you
Kindly find the attached statement of account and invoice.

According to our payment term with your company, you are requested to make the payment within {{ notes }} after you receive the monthly statement of account. Please clear and remit, if any. If you have made the payment, please let us know and we will update accordingly.

As company policy, we are entitled, at our absolute discretion, to suspend the customer's account and hold service calls until the overdue outstanding has been fully paid.

Thank you""",
}

_env = jinja2.Environment(
    autoescape=False,
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=False,
)


def _placeholder_context(period: str) -> Dict[str, str]:
    return {
        "period": period or UNSET_PERIOD,
        "debtor_code": GROUP_KEY_PLACEHOLDER,
        "organization": ORGANIZATION_PLACEHOLDER,
        "notes": NOTES_PLACEHOLDER,
    }


def _render(source: str, context: Dict[str, Any]) -> str:
    try:
        return _env.from_string(source).render(**context)
    except jinja2.UndefinedError as e:
        raise TemplateError(f"Missing variable in template: {e}") from e
    except jinja2.TemplateError as e:
        raise TemplateError(f"Error rendering template: {e}") from e


def build_template(category: Union[TemplateCategory, str], period: Optional[str] = None) -> MessageTemplate:
    """Build one of the stock templates with placeholders left in place.

    Args:
        category: Template category (``soa_inv`` or ``overdue``)
        period: Billing period shown in the subject; blank means unset

    Returns:
        MessageTemplate whose subject and body contain the placeholders
    """
    try:
        category = TemplateCategory(category)
    except ValueError as e:
        raise TemplateError(f"Unknown template category: {category}") from e

    period = (period or "").strip()
    context = _placeholder_context(period)
    return MessageTemplate(
        category=category,
        subject=_render(_SUBJECTS[category], context),
        body=_render(_BODIES[category], context),
        period=period,
    )


def load_template(path: Union[str, Path]) -> MessageTemplate:
    """Load a template from a YAML file.

    The file holds ``category``, ``subject`` and ``body`` plus an optional
    ``period``. Subject and body are rendered with Jinja2 against ``period``
    before the placeholders are used.

    Raises:
        TemplateError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise TemplateError(f"Template file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TemplateError(f"Error parsing template {path}: {e}") from e

    if not isinstance(data, dict):
        raise TemplateError(f"Template file {path} must contain a mapping")

    missing = [key for key in ("category", "subject", "body") if not data.get(key)]
    if missing:
        raise TemplateError(f"Template file {path} is missing: {missing}")

    try:
        category = TemplateCategory(str(data["category"]).lower())
    except ValueError as e:
        raise TemplateError(f"Unknown template category in {path}: {data['category']}") from e

    period = str(data.get("period") or "").strip()
    context = _placeholder_context(period)
    return MessageTemplate(
        category=category,
        subject=_render(str(data["subject"]), context),
        body=_render(str(data["body"]), context),
        period=period,
    )


def preview_template(template: MessageTemplate, group: RecipientGroup) -> Dict[str, str]:
    """Subject and body as they would be sent to ``group``."""
    values = placeholder_values(group.key, group.members)
    return {
        "group_key": group.key,
        "subject": substitute_placeholders(template.subject, values),
        "body": substitute_placeholders(template.body, values),
    }
