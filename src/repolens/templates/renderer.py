"""Markdown report rendering.

Renders an AnalysisResult to a markdown architecture report using Jinja2
templates shipped with the package. Output is deterministic: the same
result always renders to the same text.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from repolens.errors import ReportGenerationError
from repolens.models.analysis import AnalysisResult, Severity

logger = logging.getLogger(__name__)

SEVERITY_ORDER = [s.value for s in Severity]


def format_datetime(dt: datetime | str | None) -> str:
    """Format a datetime for display in the report.

    Args:
        dt: Datetime object or ISO string

    Returns:
        Formatted date string
    """
    if dt is None:
        return "N/A"

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt)
        except ValueError:
            return dt

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)

    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def severity_rank(value: str) -> int:
    """Sort key placing critical findings first."""
    return SEVERITY_ORDER.index(value) if value in SEVERITY_ORDER else len(SEVERITY_ORDER)


class ReportRenderer:
    """Renders analysis results to a markdown report.

    Usage:
        renderer = ReportRenderer()
        markdown = renderer.render(result)
    """

    def __init__(self, template_name: str = "REPORT.md.j2") -> None:
        """Initialize the renderer.

        Args:
            template_name: Template file within the package templates
        """
        self.template_name = template_name
        self._env = Environment(
            loader=PackageLoader("repolens", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._env.filters["format_datetime"] = format_datetime

    def __call__(self, result: AnalysisResult) -> str:
        return self.render(result)

    def render(self, result: AnalysisResult) -> str:
        """Render a result.

        Args:
            result: Synthesized analysis result

        Returns:
            Rendered markdown

        Raises:
            ReportGenerationError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(self.template_name)
            rendered = template.render(**self._build_context(result))
        except TemplateError as e:
            raise ReportGenerationError(f"Report rendering failed: {e}") from e

        logger.debug("Rendered report (%d characters)", len(rendered))
        return rendered

    def _build_context(self, result: AnalysisResult) -> dict[str, Any]:
        data = result.to_dict()
        owner = result.repository.get("owner")
        name = result.repository.get("name")
        repo_name = f"{owner}/{name}" if owner and name else (name or result.repo_url)
        return {
            "repository_name": repo_name,
            "result": data,
            "architecture": data["architecture"],
            "findings": sorted(data["findings"], key=lambda f: severity_rank(f["severity"])),
            "security_findings": (
                sorted(data["security_findings"], key=lambda f: severity_rank(f["severity"]))
                if data["security_findings"] is not None
                else None
            ),
            "recommendations": data["recommendations"],
            "metadata": data["metadata"],
            "usage": data["usage"],
            "timestamp": result.created_at,
        }
