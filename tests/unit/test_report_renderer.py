"""Unit tests for the markdown report renderer."""

from datetime import UTC, datetime

import pytest

from repolens.errors import ReportGenerationError
from repolens.models.analysis import AnalysisResult
from repolens.templates import ReportRenderer, format_datetime


class TestFormatDatetime:
    """Tests for the format_datetime filter."""

    def test_none(self) -> None:
        assert format_datetime(None) == "N/A"

    def test_naive_is_utc(self) -> None:
        assert format_datetime(datetime(2026, 3, 1, 8, 30)) == "2026-03-01 08:30:00 UTC"

    def test_iso_string(self) -> None:
        assert format_datetime("2026-03-01T08:30:00+00:00") == "2026-03-01 08:30:00 UTC"

    def test_unparseable_string_passthrough(self) -> None:
        assert format_datetime("yesterday") == "yesterday"


class TestReportRenderer:
    """Tests for ReportRenderer."""

    @pytest.fixture
    def renderer(self) -> ReportRenderer:
        return ReportRenderer()

    def test_renders_sections(self, renderer: ReportRenderer, sample_result: AnalysisResult) -> None:
        """Test the report carries every populated section."""
        report = renderer.render(sample_result)

        assert report.startswith("# acme/api Architecture Report")
        assert "| Project type | backend (92% confidence) |" in report
        assert "**Pattern:** layered (80% confidence)" in report
        assert "- **HTTP**: Routing (routes)" in report
        assert "| routes | module | `src/routes` |" in report
        assert "## Security" in report
        assert "CWE-798" in report
        assert "| high | Paginate order listing | low | high |" in report
        assert "- Files: 6" in report

    def test_findings_sorted_by_severity(
        self, renderer: ReportRenderer, sample_result: AnalysisResult
    ) -> None:
        """Test higher severities are listed first."""
        report = renderer.render(sample_result)

        assert report.index("[HIGH] No controller tests") < report.index(
            "[LOW] Unbounded order listing"
        )

    def test_security_section_omitted_when_not_requested(
        self, renderer: ReportRenderer, sample_result: AnalysisResult
    ) -> None:
        """Test the security section is absent when security was skipped."""
        sample_result.security_findings = None

        assert "## Security" not in renderer.render(sample_result)

    def test_deterministic(self, renderer: ReportRenderer, sample_result: AnalysisResult) -> None:
        """Test rendering the same result twice gives the same text."""
        sample_result.created_at = datetime(2026, 1, 1, tzinfo=UTC)

        assert renderer.render(sample_result) == renderer.render(sample_result)

    def test_callable(self, renderer: ReportRenderer, sample_result: AnalysisResult) -> None:
        """Test the renderer can be used directly as a report generator."""
        assert renderer(sample_result) == renderer.render(sample_result)

    def test_repository_name_falls_back_to_url(
        self, renderer: ReportRenderer, sample_result: AnalysisResult
    ) -> None:
        """Test results without repository info are titled by URL."""
        sample_result.repository = {}

        assert renderer.render(sample_result).startswith(
            "# https://github.com/acme/api Architecture Report"
        )

    def test_missing_template(self, sample_result: AnalysisResult) -> None:
        """Test a missing template raises ReportGenerationError."""
        with pytest.raises(ReportGenerationError):
            ReportRenderer("MISSING.md.j2").render(sample_result)
