"""Result synthesis.

Merges the outputs of successful analysis tasks into one AnalysisResult:

- architecture tasks evolve a single ArchitectureModel (pattern and layers,
  components merged by name, dependency graph)
- security tasks append SecurityFindings
- every other category appends general Findings
- any output carrying ``recommendations`` contributes Recommendations

Task outputs are loosely shaped model responses, so every field is read
defensively; text that never parsed as JSON is kept as an informational
finding rather than dropped.
"""

import copy
import logging
from typing import Any

from repolens.models.analysis import (
    AnalysisResult,
    ArchitectureModel,
    Component,
    DependencyGraph,
    Finding,
    Layer,
    Recommendation,
    SecurityFinding,
    Severity,
)
from repolens.models.classification import ClassificationResult
from repolens.models.tasks import TaskCategory, TaskResult

logger = logging.getLogger(__name__)

# Alternative field names seen in model output
_FINDING_LISTS = ("findings", "issues", "vulnerabilities")
_FILE_KEYS = ("file_path", "file", "location", "path")
_LINE_KEYS = ("line", "line_number", "lineNumber")


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    try:
        return float(value) if isinstance(value, str) else None
    except ValueError:
        return None


def _finding_items(output: dict[str, Any]) -> list[dict[str, Any]]:
    for key in _FINDING_LISTS:
        items = output.get(key)
        if isinstance(items, list):
            return [item for item in items if isinstance(item, dict)]
    return []


# =============================================================================
# Parsers
# =============================================================================


def parse_findings(output: dict[str, Any], category: str, task_id: str) -> list[Finding]:
    """Parse general findings from a task output."""
    findings = []
    for item in _finding_items(output):
        title = str(item.get("title") or item.get("name") or "").strip()
        if not title:
            continue
        file_path = _first(item, _FILE_KEYS)
        findings.append(
            Finding(
                category=category,
                severity=Severity.parse(item.get("severity"), Severity.INFO),
                title=title,
                description=str(item.get("description", "")),
                file_path=str(file_path) if file_path is not None else None,
                line=_as_int(_first(item, _LINE_KEYS)),
                task_id=task_id,
            )
        )
    return findings


def parse_security_findings(output: dict[str, Any], task_id: str) -> list[SecurityFinding]:
    """Parse security findings from a task output."""
    findings = []
    for item in _finding_items(output):
        title = str(item.get("title") or item.get("name") or "").strip()
        if not title:
            continue
        file_path = _first(item, _FILE_KEYS)
        remediation = item.get("remediation") or item.get("recommendation")
        findings.append(
            SecurityFinding(
                category=TaskCategory.SECURITY.value,
                severity=Severity.parse(item.get("severity"), Severity.MEDIUM),
                title=title,
                description=str(item.get("description", "")),
                file_path=str(file_path) if file_path is not None else None,
                line=_as_int(_first(item, _LINE_KEYS)),
                task_id=task_id,
                cwe=str(item["cwe"]) if item.get("cwe") else None,
                owasp=str(item["owasp"]) if item.get("owasp") else None,
                cvss=_as_float(item.get("cvss")),
                remediation=str(remediation) if remediation else None,
            )
        )
    return findings


def parse_recommendations(value: Any, category: str) -> list[Recommendation]:
    """Parse recommendations; plain strings become medium-priority entries."""
    if not isinstance(value, list):
        return []
    recommendations = []
    for item in value:
        if isinstance(item, str) and item.strip():
            recommendations.append(Recommendation(category=category, title=item.strip()))
        elif isinstance(item, dict) and (item.get("title") or item.get("description")):
            data = dict(item)
            data.setdefault("category", category)
            data.setdefault("title", str(item.get("description", ""))[:80])
            recommendations.append(Recommendation.from_dict(data))
    return recommendations


def merge_architecture(model: ArchitectureModel, output: dict[str, Any]) -> None:
    """Fold one architecture task output into the model in place.

    Pattern, confidence, description and layers replace earlier values when
    present; components merge by name (later fields win); graph parts
    replace when present.
    """
    pattern = output.get("pattern")
    if isinstance(pattern, str) and pattern.strip():
        model.pattern = pattern.strip()
    confidence = _as_float(output.get("confidence", output.get("pattern_confidence")))
    if confidence is not None:
        model.pattern_confidence = min(max(confidence, 0.0), 1.0)
    description = output.get("description")
    if isinstance(description, str) and description.strip():
        model.description = description.strip()

    layers = output.get("layers")
    if isinstance(layers, list) and layers:
        model.layers = [
            Layer.from_dict(layer) if isinstance(layer, dict) else Layer(name=str(layer))
            for layer in layers
        ]

    components = output.get("components")
    if isinstance(components, list):
        by_name = {component.name: component for component in model.components}
        for item in components:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            incoming = Component.from_dict(item)
            existing = by_name.get(incoming.name)
            if existing is None:
                by_name[incoming.name] = incoming
                continue
            merged = existing.to_dict()
            merged.update({k: v for k, v in incoming.to_dict().items() if v})
            by_name[incoming.name] = Component.from_dict(merged)
        model.components = list(by_name.values())

    graph = model.dependency_graph
    nodes = output.get("nodes")
    edges = output.get("edges")
    external = output.get("external_dependencies", output.get("externalDependencies"))
    if any(isinstance(part, list) for part in (nodes, edges, external)):
        model.dependency_graph = DependencyGraph(
            nodes=nodes if isinstance(nodes, list) else graph.nodes,
            edges=edges if isinstance(edges, list) else graph.edges,
            external_dependencies=external if isinstance(external, list) else graph.external_dependencies,
        )


# =============================================================================
# Synthesizer
# =============================================================================


class ResultSynthesizer:
    """Merges successful task results into an AnalysisResult.

    Usage:
        synthesizer = ResultSynthesizer()
        result = synthesizer.synthesize(repo_url, branch, commit, classification, results)
    """

    def synthesize(
        self,
        repo_url: str,
        branch: str,
        commit_hash: str,
        classification: ClassificationResult,
        task_results: list[TaskResult],
        include_security: bool = True,
    ) -> AnalysisResult:
        """Merge task results.

        Args:
            repo_url: Repository URL
            branch: Analyzed branch
            commit_hash: Analyzed commit
            classification: Classifier verdict
            task_results: Results in execution order; failed ones are skipped
            include_security: Whether security was requested

        Returns:
            Merged AnalysisResult (usage, report and repository info are
            attached by the caller). A task whose output cannot be merged is
            logged and left out of ``contributing_tasks``.
        """
        result = AnalysisResult(
            repo_url=repo_url,
            branch=branch,
            commit_hash=commit_hash,
            project_type=classification.primary_type,
            tech_stack=classification.sorted_tech_stack(),
            classification_confidence=classification.confidence,
            security_findings=[] if include_security else None,
        )

        for task_result in task_results:
            if not task_result.success or task_result.output is None:
                continue
            # Merge into a copy so a failing output leaves no partial state behind
            staged = copy.deepcopy(result)
            try:
                self._merge(staged, task_result)
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                logger.warning(
                    "Skipping output of task %s: cannot merge (%s)", task_result.task_id, e
                )
                continue
            result = staged
            result.contributing_tasks.append(task_result.task_id)

        logger.info(
            "Synthesized %d task results: %d findings, %d security findings, %d recommendations",
            len(result.contributing_tasks),
            len(result.findings),
            len(result.security_findings or []),
            len(result.recommendations),
        )
        return result

    def _merge(self, result: AnalysisResult, task_result: TaskResult) -> None:
        category = task_result.category
        output = task_result.output

        if isinstance(output, str):
            self._merge_text(result, task_result, output)
            return
        if not isinstance(output, dict):
            logger.debug("Ignoring non-object output of task %s", task_result.task_id)
            return

        if category == TaskCategory.ARCHITECTURE:
            merge_architecture(result.architecture, output)
            # Type-specific architecture reviews also report findings
            result.findings.extend(parse_findings(output, category.value, task_result.task_id))
        elif category == TaskCategory.SECURITY:
            if result.security_findings is not None:
                result.security_findings.extend(
                    parse_security_findings(output, task_result.task_id)
                )
        else:
            result.findings.extend(parse_findings(output, category.value, task_result.task_id))

        result.recommendations.extend(
            parse_recommendations(output.get("recommendations"), category.value)
        )

    def _merge_text(self, result: AnalysisResult, task_result: TaskResult, text: str) -> None:
        text = text.strip()
        if not text:
            return
        if task_result.category == TaskCategory.ARCHITECTURE:
            if not result.architecture.description:
                result.architecture.description = text
            return
        if task_result.category == TaskCategory.SECURITY and result.security_findings is None:
            return
        result.findings.append(
            Finding(
                category=task_result.category.value,
                severity=Severity.INFO,
                title=f"{task_result.task_id} notes",
                description=text,
                task_id=task_result.task_id,
            )
        )
