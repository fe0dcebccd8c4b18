"""Select the attachment files that accompany a template category."""

from typing import Dict, List, Optional, Tuple

from .models import CatalogEntry, FileCategory, TemplateCategory

CATEGORY_FILES: Dict[TemplateCategory, Tuple[FileCategory, ...]] = {
    TemplateCategory.SOA_INV: (FileCategory.INVOICE, FileCategory.STATEMENT),
    TemplateCategory.OVERDUE: (FileCategory.OVERDUE,),
}

NO_ATTACHMENT_REASON = "no attachment found for this group and template category"


def resolve_attachments(category: TemplateCategory, entry: Optional[CatalogEntry]) -> List[str]:
    """Return the file paths for ``category`` in catalog order.

    An empty list means the group should be skipped.
    """
    if entry is None:
        return []

    paths: List[str] = []
    for file_category in CATEGORY_FILES[TemplateCategory(category)]:
        for catalog_file in entry.files_in(file_category):
            if catalog_file.file_path not in paths:
                paths.append(catalog_file.file_path)
    return paths
