"""Report templates and the markdown report renderer."""

from repolens.templates.renderer import ReportRenderer, format_datetime

__all__ = ["ReportRenderer", "format_datetime"]
