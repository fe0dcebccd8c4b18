"""Archive extraction and attachment categorization."""

import logging
import re
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

from .exceptions import CatalogError
from .models import AttachmentCatalog, CatalogFile, FileCategory

logger = logging.getLogger(__name__)

# "{code} {type} {custom code}", e.g. "3000-AT502 INV 12345"
FILE_NAME_PATTERN = re.compile(r"^(.+?)\s+(INV|SOA|OD|OTHER)\s+(\d{4,6})$", re.IGNORECASE)
GROUP_KEY_PATTERN = re.compile(r"^[A-Z0-9]+-[A-Z0-9]+$")


@dataclass
class ExtractionReport:
    """Result of categorizing a directory of attachment files."""

    catalog: AttachmentCatalog = field(default_factory=AttachmentCatalog)
    total_files: int = 0
    categorized_files: int = 0
    uncategorized_files: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Found {self.total_files} files. "
            f"Categorized: {self.categorized_files}, "
            f"Uncategorized: {self.uncategorized_files}, "
            f"Debtors found: {len(self.catalog)}"
        )


def _is_candidate(path: Path) -> bool:
    return path.is_file() and not path.name.startswith(".") and path.suffix.lower() != ".zip"


def build_catalog(directory: Union[str, Path]) -> ExtractionReport:
    """Categorize every file under ``directory`` by its name.

    Raises:
        CatalogError: If the directory does not exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise CatalogError(f"Attachment directory not found: {directory}")

    report = ExtractionReport()
    files_by_key: Dict[str, List[CatalogFile]] = {}

    for path in sorted(p for p in directory.rglob("*") if _is_candidate(p)):
        report.total_files += 1
        match = FILE_NAME_PATTERN.match(path.stem)
        if not match:
            report.uncategorized_files += 1
            report.errors.append(f"Unmatched file: {path.name}")
            logger.warning("File does not match naming convention: %s", path.name)
            continue

        raw_key = match.group(1).strip()
        group_key = raw_key.upper()
        if not GROUP_KEY_PATTERN.match(group_key):
            report.uncategorized_files += 1
            report.errors.append(
                f"Invalid debtor code style in file '{path.name}': '{raw_key}'. Expected format like 3000-AT502."
            )
            logger.warning("Invalid debtor code style: %s in file %s", raw_key, path.name)
            continue

        files_by_key.setdefault(group_key, []).append(
            CatalogFile(
                file_name=path.name,
                file_path=str(path.resolve()),
                category=FileCategory(match.group(2).upper()),
                custom_code=match.group(3),
                file_size=path.stat().st_size,
            )
        )
        report.categorized_files += 1

    report.catalog = AttachmentCatalog.from_files(files_by_key)
    logger.info(report.message)
    return report


def extract_archive(zip_path: Union[str, Path], extract_dir: Union[str, Path]) -> ExtractionReport:
    """Extract a ZIP archive into a clean ``extract_dir`` and categorize it.

    Raises:
        CatalogError: If the archive is missing, invalid or unsafe
    """
    zip_path = Path(zip_path)
    extract_dir = Path(extract_dir)
    if zip_path.suffix.lower() != ".zip":
        raise CatalogError(f"Only ZIP files are allowed: {zip_path.name}")
    if not zip_path.is_file():
        raise CatalogError(f"Archive not found: {zip_path}")

    if extract_dir.exists():
        shutil.rmtree(extract_dir)
    extract_dir.mkdir(parents=True)
    root = extract_dir.resolve()

    try:
        with zipfile.ZipFile(zip_path) as archive:
            for member in archive.infolist():
                target = (root / member.filename).resolve()
                if target != root and root not in target.parents:
                    raise CatalogError(f"Archive entry escapes extraction directory: {member.filename}")
            archive.extractall(root)
    except zipfile.BadZipFile as e:
        raise CatalogError(f"Error extracting ZIP file: {e}", cause=e) from e

    logger.info("ZIP file %s extracted to %s", zip_path.name, root)
    return build_catalog(root)


def cleanup_extracted(extract_dir: Union[str, Path]) -> None:
    """Remove an extraction directory, logging failures."""
    extract_dir = Path(extract_dir)
    try:
        if extract_dir.exists():
            shutil.rmtree(extract_dir)
            logger.info("Cleaned up extraction path: %s", extract_dir)
    except OSError as e:
        logger.error("Error cleaning up extraction path %s: %s", extract_dir, e)
