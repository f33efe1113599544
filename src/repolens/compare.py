"""Comparison of two analysis results of the same repository.

Findings are matched by title across runs.
"""

from dataclasses import dataclass, field
from typing import Any

from repolens.models.analysis import AnalysisResult


@dataclass
class ComparisonResult:
    """Differences between an earlier and a later analysis.

    Attributes:
        from_commit: Commit of the earlier result
        to_commit: Commit of the later result
        architecture_changes: Human-readable architecture changes
        new_findings: Titles present only in the later result
        resolved_findings: Titles present only in the earlier result
        tech_added: Technologies present only in the later result
        tech_removed: Technologies present only in the earlier result
    """

    from_commit: str
    to_commit: str
    architecture_changes: list[str] = field(default_factory=list)
    new_findings: list[str] = field(default_factory=list)
    resolved_findings: list[str] = field(default_factory=list)
    tech_added: list[str] = field(default_factory=list)
    tech_removed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Check whether anything differs."""
        return bool(
            self.architecture_changes
            or self.new_findings
            or self.resolved_findings
            or self.tech_added
            or self.tech_removed
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "from_commit": self.from_commit,
            "to_commit": self.to_commit,
            "architecture_changes": list(self.architecture_changes),
            "new_findings": list(self.new_findings),
            "resolved_findings": list(self.resolved_findings),
            "tech_stack_changes": {
                "added": list(self.tech_added),
                "removed": list(self.tech_removed),
            },
        }


def compare_results(before: AnalysisResult, after: AnalysisResult) -> ComparisonResult:
    """Compare two results.

    Args:
        before: Earlier result
        after: Later result

    Returns:
        ComparisonResult describing what changed
    """
    before_titles = {f.title for f in before.all_findings()}
    after_titles = {f.title for f in after.all_findings()}

    comparison = ComparisonResult(
        from_commit=before.commit_hash,
        to_commit=after.commit_hash,
        new_findings=sorted(after_titles - before_titles),
        resolved_findings=sorted(before_titles - after_titles),
        tech_added=[t for t in after.tech_stack if t not in before.tech_stack],
        tech_removed=[t for t in before.tech_stack if t not in after.tech_stack],
    )

    if before.project_type != after.project_type:
        comparison.architecture_changes.append(
            f"Project type changed from {before.project_type.value} to {after.project_type.value}"
        )
    if before.architecture.pattern != after.architecture.pattern:
        comparison.architecture_changes.append(
            f"Architecture pattern changed from {before.architecture.pattern} "
            f"to {after.architecture.pattern}"
        )
    if len(before.architecture.layers) != len(after.architecture.layers):
        comparison.architecture_changes.append(
            f"Number of layers changed from {len(before.architecture.layers)} "
            f"to {len(after.architecture.layers)}"
        )

    before_components = {c.name for c in before.architecture.components}
    after_components = {c.name for c in after.architecture.components}
    for name in sorted(after_components - before_components):
        comparison.architecture_changes.append(f"Component added: {name}")
    for name in sorted(before_components - after_components):
        comparison.architecture_changes.append(f"Component removed: {name}")

    return comparison
