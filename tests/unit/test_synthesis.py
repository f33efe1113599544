"""Unit tests for result synthesis."""

import logging

import pytest

from repolens.models.analysis import ArchitectureModel, Component, Priority, Severity
from repolens.models.classification import ClassificationResult, ProjectType
from repolens.models.tasks import TaskCategory, TaskResult
from repolens.synthesis import (
    ResultSynthesizer,
    merge_architecture,
    parse_findings,
    parse_recommendations,
    parse_security_findings,
)


def ok(task_id: str, category: TaskCategory, output: object) -> TaskResult:
    return TaskResult(task_id=task_id, category=category, success=True, output=output)


def failed(task_id: str, category: TaskCategory) -> TaskResult:
    return TaskResult(task_id=task_id, category=category, success=False, error="boom")


class TestParsers:
    """Tests for the loose output parsers."""

    def test_parse_findings_alternative_keys(self) -> None:
        """Test alternative list, file and line field names are accepted."""
        output = {
            "issues": [
                {"title": "N+1 query", "severity": "HIGH", "file": "src/orders.js", "lineNumber": "12"},
                {"title": "", "severity": "low"},
                "not a dict",
            ]
        }

        findings = parse_findings(output, "performance", "perf-analysis")

        assert len(findings) == 1
        assert findings[0].severity == Severity.HIGH
        assert findings[0].file_path == "src/orders.js"
        assert findings[0].line == 12
        assert findings[0].task_id == "perf-analysis"

    def test_unknown_severity_defaults(self) -> None:
        """Test unrecognized severities fall back per finding kind."""
        general = parse_findings({"findings": [{"title": "x", "severity": "urgent"}]}, "testing", "t")
        security = parse_security_findings({"findings": [{"title": "x"}]}, "s")

        assert general[0].severity == Severity.INFO
        assert security[0].severity == Severity.MEDIUM

    def test_parse_security_findings(self) -> None:
        """Test security-specific fields are read."""
        output = {
            "vulnerabilities": [
                {
                    "title": "SQL injection",
                    "severity": "critical",
                    "path": "src/db.js",
                    "line": 40,
                    "cwe": "CWE-89",
                    "owasp": "A03:2021",
                    "cvss": "9.8",
                    "recommendation": "Use parameterized queries",
                }
            ]
        }

        [finding] = parse_security_findings(output, "security-vulnerabilities")

        assert finding.category == "security"
        assert finding.cwe == "CWE-89"
        assert finding.cvss == pytest.approx(9.8)
        assert finding.remediation == "Use parameterized queries"
        assert finding.file_path == "src/db.js"

    def test_parse_recommendations(self) -> None:
        """Test string and object recommendations are both accepted."""
        recommendations = parse_recommendations(
            ["Add an index", {"title": "Cache reads", "priority": "high"}, {}, 3],
            "performance",
        )

        assert [r.title for r in recommendations] == ["Add an index", "Cache reads"]
        assert recommendations[0].priority == Priority.MEDIUM
        assert recommendations[1].priority == Priority.HIGH

    def test_parse_recommendations_non_list(self) -> None:
        """Test non-list values yield nothing."""
        assert parse_recommendations("add tests", "testing") == []


class TestMergeArchitecture:
    """Tests for merge_architecture."""

    def test_overview_then_components(self) -> None:
        """Test components merge by name and later fields win."""
        model = ArchitectureModel()

        merge_architecture(
            model,
            {
                "pattern": "layered",
                "confidence": 1.7,
                "layers": [{"name": "HTTP"}, "Data"],
                "components": [{"name": "orders", "path": "src/orders"}],
            },
        )
        merge_architecture(
            model,
            {"components": [{"name": "orders", "description": "Order API"}, {"name": "db"}]},
        )

        assert model.pattern == "layered"
        assert model.pattern_confidence == 1.0
        assert [layer.name for layer in model.layers] == ["HTTP", "Data"]
        orders = next(c for c in model.components if c.name == "orders")
        assert orders.path == "src/orders"
        assert orders.description == "Order API"
        assert {c.name for c in model.components} == {"orders", "db"}

    def test_dependency_graph_parts(self) -> None:
        """Test graph parts replace only when present."""
        model = ArchitectureModel(components=[Component(name="api")])

        merge_architecture(model, {"edges": [{"source": "api", "target": "db", "type": "uses"}]})

        assert model.dependency_graph.edges[0]["target"] == "db"
        assert model.dependency_graph.nodes == []
        assert model.pattern == "unknown"


class TestResultSynthesizer:
    """Tests for ResultSynthesizer."""

    @pytest.fixture
    def synthesizer(self) -> ResultSynthesizer:
        return ResultSynthesizer()

    def test_merges_by_category(
        self, synthesizer: ResultSynthesizer, backend_classification: ClassificationResult
    ) -> None:
        """Test each category lands in its part of the result."""
        results = [
            ok("arch-overview", TaskCategory.ARCHITECTURE, {"pattern": "mvc", "recommendations": ["Split modules"]}),
            ok(
                "security-secrets",
                TaskCategory.SECURITY,
                {"findings": [{"title": "AWS key in repo", "severity": "critical"}]},
            ),
            ok(
                "perf-analysis",
                TaskCategory.PERFORMANCE,
                {"findings": [{"title": "Sync I/O in handler", "severity": "medium"}]},
            ),
            failed("test-analysis", TaskCategory.TESTING),
        ]

        result = synthesizer.synthesize(
            "https://github.com/acme/api", "main", "abc", backend_classification, results
        )

        assert result.project_type == ProjectType.BACKEND
        assert result.tech_stack == ["express", "javascript", "postgresql"]
        assert result.architecture.pattern == "mvc"
        assert [f.title for f in result.security_findings] == ["AWS key in repo"]
        assert [f.title for f in result.findings] == ["Sync I/O in handler"]
        assert [r.title for r in result.recommendations] == ["Split modules"]
        assert result.contributing_tasks == ["arch-overview", "security-secrets", "perf-analysis"]

    def test_security_excluded(
        self, synthesizer: ResultSynthesizer, backend_classification: ClassificationResult
    ) -> None:
        """Test security findings are None when security was not requested."""
        result = synthesizer.synthesize(
            "u", "main", "abc", backend_classification, [], include_security=False
        )

        assert result.security_findings is None

    def test_security_included_but_empty(
        self, synthesizer: ResultSynthesizer, backend_classification: ClassificationResult
    ) -> None:
        """Test requested security with no findings is an empty list."""
        result = synthesizer.synthesize("u", "main", "abc", backend_classification, [])

        assert result.security_findings == []

    def test_text_output_kept_as_note(
        self, synthesizer: ResultSynthesizer, backend_classification: ClassificationResult
    ) -> None:
        """Test unparsed text becomes an informational finding."""
        result = synthesizer.synthesize(
            "u",
            "main",
            "abc",
            backend_classification,
            [
                ok("docs-analysis", TaskCategory.DOCUMENTATION, "README lacks setup steps."),
                ok("arch-overview", TaskCategory.ARCHITECTURE, "A classic layered app."),
            ],
        )

        assert result.findings[0].title == "docs-analysis notes"
        assert result.findings[0].severity == Severity.INFO
        assert result.architecture.description == "A classic layered app."
        assert result.contributing_tasks == ["docs-analysis", "arch-overview"]

    def test_malformed_lists_are_coerced(
        self, synthesizer: ResultSynthesizer, backend_classification: ClassificationResult
    ) -> None:
        """Test list fields holding scalars read as empty instead of failing."""
        results = [
            ok(
                "arch-overview",
                TaskCategory.ARCHITECTURE,
                {"pattern": "layered", "layers": [{"name": "HTTP", "components": 5}]},
            ),
            ok(
                "arch-components",
                TaskCategory.ARCHITECTURE,
                {"components": [{"name": "api", "dependencies": "express", "responsibilities": None}]},
            ),
        ]

        result = synthesizer.synthesize("u", "main", "abc", backend_classification, results)

        assert result.architecture.layers[0].name == "HTTP"
        assert result.architecture.layers[0].components == []
        [api] = result.architecture.components
        assert api.dependencies == []
        assert api.responsibilities == []
        assert result.contributing_tasks == ["arch-overview", "arch-components"]

    def test_unmergeable_output_is_skipped(
        self, backend_classification: ClassificationResult, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a task whose merge fails is dropped without leaving partial state."""

        class HalfMergingSynthesizer(ResultSynthesizer):
            def _merge(self, result, task_result):
                super()._merge(result, task_result)
                if task_result.task_id == "docs-analysis":
                    raise TypeError("unexpected shape")

        results = [
            ok("perf-analysis", TaskCategory.PERFORMANCE, {"findings": [{"title": "N+1 query"}]}),
            ok("docs-analysis", TaskCategory.DOCUMENTATION, {"findings": [{"title": "No README"}]}),
        ]

        with caplog.at_level(logging.WARNING, logger="repolens"):
            result = HalfMergingSynthesizer().synthesize(
                "u", "main", "abc", backend_classification, results
            )

        assert [f.title for f in result.findings] == ["N+1 query"]
        assert result.contributing_tasks == ["perf-analysis"]
        assert "Skipping output of task docs-analysis" in caplog.text
