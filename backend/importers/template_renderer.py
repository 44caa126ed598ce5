"""
Template rendering for imported notes.

Note templates and output-path templates are Jinja2 templates resolved
relative to the vault root.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound

from config import ExportFormat
from exceptions import TemplateRenderError
from importers.record_normalizer import format_creators
from importers.template_input import TemplateInput

logger = logging.getLogger(__name__)


_ILLEGAL_FILE_CHARS = re.compile(r'[*"\\<>:|?\x00-\x1f]')
_REPEATED_SLASHES = re.compile(r"/{2,}")
DEFAULT_NOTE_EXTENSION = ".md"

TemplateContext = Union[TemplateInput, Mapping[str, Any]]


def remove_starting_slash(path: str) -> str:
    return path.lstrip("/")


def sanitize_file_path(path: str) -> str:
    """Strip characters that are illegal in file names from every segment."""
    segments = []
    for segment in path.replace("\\", "/").split("/"):
        cleaned = _ILLEGAL_FILE_CHARS.sub("", segment).strip().rstrip(".")
        if cleaned:
            segments.append(cleaned)
    return "/".join(segments)


def normalize_path(path: str) -> str:
    """Vault-relative path with single forward slashes and no outer slashes."""
    path = path.replace("\\", "/").replace("\u00a0", " ")
    path = _REPEATED_SLASHES.sub("/", path)
    return path.strip("/")


def format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    """Jinja filter: format a datetime (or ISO string) with strftime."""
    if isinstance(value, datetime):
        return value.strftime(fmt)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime(fmt)
        except ValueError:
            return value
    return ""


def _context(value: TemplateContext) -> Dict[str, Any]:
    if isinstance(value, TemplateInput):
        return value.to_template_data()
    return dict(value)


class TemplateRenderer:
    """Jinja2 renderer rooted at the vault directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.environment = Environment(
            loader=FileSystemLoader(str(self.root)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.environment.filters.setdefault("format_date", format_date)
        self.environment.filters.setdefault("creators", format_creators)

    def render(self, template_path: str, template_input: TemplateContext) -> str:
        """Render a template file (vault-relative path)."""
        name = remove_starting_slash(template_path)
        try:
            template = self.environment.get_template(name)
            return template.render(**_context(template_input))
        except TemplateNotFound as e:
            raise TemplateRenderError(template_path, "template not found") from e
        except TemplateError as e:
            raise TemplateRenderError(template_path, str(e)) from e

    def render_string(self, source: str, template_input: TemplateContext) -> str:
        """Render an inline template such as an output path template."""
        try:
            return self.environment.from_string(source).render(**_context(template_input))
        except TemplateError as e:
            raise TemplateRenderError(source, str(e)) from e

    def render_output_path(
        self,
        export_format: ExportFormat,
        template_input: TemplateContext,
    ) -> str:
        """
        Vault-relative path of the note for an item.

        Rendered from the format's output path template, sanitized and
        normalized; ".md" is appended when missing.
        """
        rendered = self.render_string(export_format.output_path_template, template_input)
        path = normalize_path(sanitize_file_path(remove_starting_slash(rendered.strip())))
        if not path:
            raise TemplateRenderError(
                export_format.output_path_template, "output path rendered empty"
            )
        if not path.lower().endswith(DEFAULT_NOTE_EXTENSION):
            path += DEFAULT_NOTE_EXTENSION
        logger.debug(f"Output path for {export_format.name}: {path}")
        return path
