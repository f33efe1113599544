"""Repository classification entities.

- ProjectType: Fixed enumeration of repository kinds
- SignalKind: Source of a classification signal (with its fixed weight)
- Indicator: One detected signal voting for a project type
- ClassificationResult: Classifier verdict for a repository
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProjectType(Enum):
    """Primary kind of a repository."""

    BACKEND = "backend"
    FRONTEND = "frontend"
    MOBILE = "mobile"
    INFRA_AS_CODE = "infra-as-code"
    LIBRARY = "library"
    MONOREPO = "monorepo"
    UNKNOWN = "unknown"


# Tie-break ranking: rarer, more decisive signals outrank generic ones
TYPE_PRIORITY: dict[ProjectType, int] = {
    ProjectType.INFRA_AS_CODE: 100,
    ProjectType.LIBRARY: 90,
    ProjectType.MONOREPO: 85,
    ProjectType.MOBILE: 80,
    ProjectType.FRONTEND: 70,
    ProjectType.BACKEND: 60,
    ProjectType.UNKNOWN: 0,
}


class SignalKind(Enum):
    """Source of a classification indicator."""

    FILE = "file"
    DEPENDENCY = "dependency"
    PATTERN = "pattern"
    STRUCTURE = "structure"

    @property
    def weight(self) -> float:
        """Return the fixed weight applied to indicators of this kind."""
        return SIGNAL_WEIGHTS[self]


SIGNAL_WEIGHTS: dict[SignalKind, float] = {
    SignalKind.FILE: 0.3,
    SignalKind.DEPENDENCY: 0.4,
    SignalKind.PATTERN: 0.2,
    SignalKind.STRUCTURE: 0.1,
}


@dataclass(frozen=True)
class Indicator:
    """A single classification signal.

    Attributes:
        kind: Signal source
        name: Signal name (file pattern, dependency name, structure label)
        confidence: Confidence in [0, 1]
        suggested_type: Project type this signal votes for
        path: Matching path, for path-based signals
    """

    kind: SignalKind
    name: str
    confidence: float
    suggested_type: ProjectType
    path: str | None = None

    @property
    def score(self) -> float:
        """Return the weighted contribution of this indicator."""
        return self.confidence * self.kind.weight

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "confidence": self.confidence,
            "suggested_type": self.suggested_type.value,
            "path": self.path,
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Classifier verdict.

    Attributes:
        primary_type: Winning project type
        confidence: Normalized score of the winning type, in [0, 1]
        tech_stack: Detected technology tags
        indicators: Signals that contributed (confidence above 0.3)
        sub_types: Member project types, for monorepos
        scores: Normalized score per project type
    """

    primary_type: ProjectType
    confidence: float
    tech_stack: frozenset[str] = field(default_factory=frozenset)
    indicators: tuple[Indicator, ...] = ()
    sub_types: tuple[ProjectType, ...] | None = None
    scores: dict[ProjectType, float] = field(default_factory=dict, compare=False)

    @classmethod
    def unknown(cls) -> "ClassificationResult":
        """Return the verdict used when no signal fires."""
        return cls(primary_type=ProjectType.UNKNOWN, confidence=0.0)

    def sorted_tech_stack(self) -> list[str]:
        """Return the tech stack as a sorted list."""
        return sorted(self.tech_stack)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "primary_type": self.primary_type.value,
            "confidence": round(self.confidence, 4),
            "tech_stack": self.sorted_tech_stack(),
            "indicators": [indicator.to_dict() for indicator in self.indicators],
            "sub_types": (
                [sub.value for sub in self.sub_types] if self.sub_types is not None else None
            ),
            "scores": {t.value: round(s, 4) for t, s in self.scores.items()},
        }
