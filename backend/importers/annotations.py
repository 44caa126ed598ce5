"""
Note history and annotation merging.

A rendered note carries two machine-readable markers:

    %% begin annotations %%
    ...user-kept annotations...
    %% end annotations %%

    %% Import Date: 2024-05-01T09:30:00+00:00 %%

The annotation block survives re-imports verbatim; freshly rendered
annotations are appended to it only when not already present. The import
date is always the last line and decides first-import vs re-import.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from importers.template_input import EPOCH

logger = logging.getLogger(__name__)


ANNOTATIONS_BEGIN = "%% begin annotations %%"
ANNOTATIONS_END = "%% end annotations %%"

_ANNOTATION_BLOCK = re.compile(
    re.escape(ANNOTATIONS_BEGIN) + r"(.*?)" + re.escape(ANNOTATIONS_END),
    re.DOTALL,
)
_TRAILING_IMPORT_DATE = re.compile(r"^%% Import Date: (\S+) %%\s*\Z", re.MULTILINE)


def _find_block(text: str) -> Optional[re.Match]:
    return _ANNOTATION_BLOCK.search(text)


def extract_prior_annotations(existing: str) -> str:
    """Trimmed contents of the annotation block, or "" if there is none."""
    if not existing:
        return ""
    match = _find_block(existing)
    return match.group(1).strip() if match else ""


def parse_import_date(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_last_import_timestamp(existing: str) -> datetime:
    """
    Import date recorded at the end of a note.

    Missing or unparsable markers yield the epoch, i.e. "never imported".
    """
    if not existing:
        return EPOCH
    match = _TRAILING_IMPORT_DATE.search(existing)
    if not match:
        return EPOCH
    parsed = parse_import_date(match.group(1))
    if parsed is None:
        logger.warning(f"Ignoring unparsable import date marker: {match.group(1)}")
        return EPOCH
    return parsed


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def merge_annotation_text(prior: str, fresh: str) -> str:
    """Prior text unchanged, followed by fresh paragraphs it does not hold yet."""
    prior = prior.strip()
    fresh = fresh.strip()
    if not prior:
        return fresh
    if not fresh:
        return prior

    # Whole paragraphs only; a fresh note quoted inside a longer one is still new
    known = set(_paragraphs(prior))
    additions = []
    for paragraph in _paragraphs(fresh):
        if paragraph not in known:
            known.add(paragraph)
            additions.append(paragraph)
    if not additions:
        return prior
    return "\n\n".join([prior] + additions)


def _format_block(inner: str) -> str:
    if not inner:
        return f"{ANNOTATIONS_BEGIN}\n{ANNOTATIONS_END}"
    return f"{ANNOTATIONS_BEGIN}\n{inner}\n{ANNOTATIONS_END}"


def split_annotation_block(text: str) -> Tuple[str, Optional[str], str]:
    """Split text into (before, block contents or None, after)."""
    match = _find_block(text)
    if not match:
        return text, None, ""
    return text[: match.start()], match.group(1), text[match.end():]


def merge_document(rendered: str, prior_annotations: str) -> str:
    """
    Merge a fresh render with the annotations kept in the previous note.

    The rendered metadata always wins; the annotation block keeps the prior
    text verbatim. A render without an annotation block gets one appended
    whenever prior annotations exist.
    """
    before, fresh, after = split_annotation_block(rendered)

    if fresh is None:
        if not prior_annotations.strip():
            return rendered
        return f"{rendered.rstrip()}\n\n{_format_block(prior_annotations.strip())}\n"

    merged = merge_annotation_text(prior_annotations, fresh)
    return f"{before}{_format_block(merged)}{after}"


def strip_import_date(text: str) -> str:
    """Remove the import date marker ending the text; earlier markers are content."""
    return _TRAILING_IMPORT_DATE.sub("", text).rstrip()


def append_import_date(text: str, when: Optional[datetime] = None) -> str:
    """Replace any import date marker with one for ``when`` (default: now)."""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return f"{strip_import_date(text)}\n\n%% Import Date: {when.isoformat()} %%\n"
