"""Shared pytest fixtures for RepoLens tests.

Fixtures are organized by category:
- Collaborator fixtures: In-memory source access and scripted reasoning
- Configuration fixtures: Config dicts and pipeline settings
- Analysis fixtures: Pre-built classification and analysis results
"""

import logging
from collections.abc import Iterator
from typing import Any

import pytest

from repolens.config import PipelineConfig
from repolens.models.analysis import (
    AnalysisResult,
    ArchitectureModel,
    Component,
    Finding,
    Layer,
    Level,
    Priority,
    Recommendation,
    SecurityFinding,
    Severity,
)
from repolens.models.classification import ClassificationResult, ProjectType
from repolens.models.repository import RepositoryMetadata
from repolens.utils.logging import ROOT_LOGGER
from tests.fixtures import FAKE_COMMIT, FakeSourceAccess, ScriptedReasoningService


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo handler and propagation changes made by setup_logging."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def fake_source() -> FakeSourceAccess:
    """Return source access serving a small Express backend."""
    return FakeSourceAccess()


@pytest.fixture
def reasoning() -> ScriptedReasoningService:
    """Return a reasoning service answering every task with no findings."""
    return ScriptedReasoningService()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """Return pipeline settings with short timeouts."""
    return PipelineConfig(task_timeout=5.0, stage_timeout=5.0, registry_size=50)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def full_config() -> dict[str, Any]:
    """Return a complete RepoLens configuration dict."""
    return {
        "llm": {
            "provider": "ollama",
            "model": "llama3.2",
            "api_base": "http://localhost:11434",
            "temperature": 0.2,
            "max_tokens": 2048,
        },
        "source": {
            "clone_timeout": 120,
            "tree_depth": 4,
            "tokens": {"github": "ghp_test"},
        },
        "pipeline": {
            "task_timeout": 30,
            "stage_timeout": 90,
            "file_limits": {"quick": 10, "standard": 25, "deep": 60},
            "batch_concurrency": 2,
            "max_batch_size": 5,
        },
        "cache": {
            "backend": "memory",
            "ttl_days": 3,
        },
        "notifications": {
            "timeout": 4,
        },
    }


# =============================================================================
# Analysis Fixtures
# =============================================================================


@pytest.fixture
def backend_classification() -> ClassificationResult:
    """Return a confident backend classification."""
    return ClassificationResult(
        primary_type=ProjectType.BACKEND,
        confidence=0.92,
        tech_stack=frozenset({"express", "javascript", "postgresql"}),
    )


@pytest.fixture
def sample_result() -> AnalysisResult:
    """Return a populated analysis result."""
    return AnalysisResult(
        repo_url="https://github.com/acme/api",
        branch="main",
        commit_hash=FAKE_COMMIT,
        project_type=ProjectType.BACKEND,
        tech_stack=["express", "javascript", "postgresql"],
        classification_confidence=0.92,
        architecture=ArchitectureModel(
            pattern="layered",
            pattern_confidence=0.8,
            description="Express API with routes delegating to controllers.",
            layers=[
                Layer(name="HTTP", description="Routing", components=["routes"]),
                Layer(name="Domain", description="Order logic", components=["controllers"]),
            ],
            components=[
                Component(name="routes", type="module", path="src/routes"),
                Component(name="controllers", type="module", path="src/controllers"),
            ],
        ),
        findings=[
            Finding(
                category="performance",
                severity=Severity.LOW,
                title="Unbounded order listing",
                description="GET /orders returns every row.",
                file_path="src/controllers/orders.js",
                line=1,
            ),
            Finding(
                category="testing",
                severity=Severity.HIGH,
                title="No controller tests",
            ),
        ],
        security_findings=[
            SecurityFinding(
                category="security",
                severity=Severity.CRITICAL,
                title="Hardcoded database password",
                file_path="src/db.js",
                line=3,
                cwe="CWE-798",
            ),
        ],
        recommendations=[
            Recommendation(
                category="performance",
                title="Paginate order listing",
                priority=Priority.HIGH,
                effort=Level.LOW,
                impact=Level.HIGH,
            ),
        ],
        repository={
            "url": "https://github.com/acme/api",
            "platform": "github",
            "owner": "acme",
            "name": "api",
            "branch": None,
        },
        metadata=RepositoryMetadata(size_bytes=2048, file_count=6, directory_count=4),
    )
