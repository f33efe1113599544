"""Repository type and technology stack detection.

Collects indicators from four independent signal sources, weights them by
source, normalizes the per-type totals and picks a winner. Types whose
normalized scores are within TIE_EPSILON of the top score are ranked by
TYPE_PRIORITY instead of raw score.
"""

import logging
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

from repolens.classifier.manifests import ManifestInfo, read_manifests
from repolens.classifier.patterns import (
    DEPENDENCY_RULES,
    DIRECTORY_CONFIDENCE,
    FILE_NAME_CONFIDENCE,
    MONOREPO_ROOTS,
    PYTHON_WEB_FRAMEWORKS,
    TECH_STACK_PATTERNS,
    TYPE_FILE_PATTERNS,
    Ecosystem,
)
from repolens.models.classification import (
    TYPE_PRIORITY,
    ClassificationResult,
    Indicator,
    ProjectType,
    SignalKind,
)
from repolens.models.repository import DirectoryNode, FileInfo

logger = logging.getLogger(__name__)

TIE_EPSILON = 0.1
SCORE_FLOOR = 0.01
REPORT_THRESHOLD = 0.3

ManifestReader = Callable[[str], str | None]


class _FileIndex:
    """Lookup sets derived once from a file list and a directory tree."""

    def __init__(self, files: Iterable[FileInfo], tree: DirectoryNode | None) -> None:
        self.paths: list[str] = []
        self.names: set[str] = set()
        self.extensions: set[str] = set()
        self.directories: set[str] = set()
        self.top_level_dirs: set[str] = set()

        for file in files:
            path = file.path.lower()
            self.paths.append(path)
            self.names.add(file.name.lower())
            if file.extension:
                self.extensions.add(file.extension.lower())
            parts = PurePosixPath(path).parts
            self.directories.update(parts[:-1])
            if len(parts) > 1:
                self.top_level_dirs.add(parts[0])

        if tree is not None:
            for child in tree.child_dirs():
                self.top_level_dirs.add(child.name.lower())
            for node in tree.iter_dirs():
                self.directories.add(node.name.lower())

    def has_directory(self, name: str) -> bool:
        return name.lower() in self.directories

    def first_path_under(self, name: str) -> str | None:
        prefix = f"{name.lower()}/"
        infix = f"/{prefix}"
        for path in self.paths:
            if path.startswith(prefix) or infix in path:
                return path
        return None


class RepositoryClassifier:
    """Weighted multi-signal repository classifier.

    Usage:
        classifier = RepositoryClassifier()
        result = classifier.classify(files, tree, lambda p: source.read_file(root, p))
    """

    def classify(
        self,
        files: list[FileInfo],
        tree: DirectoryNode | None,
        read_manifest: ManifestReader,
    ) -> ClassificationResult:
        """Classify a repository.

        Never raises for malformed input; unreadable or malformed manifests
        contribute no indicators.

        Args:
            files: All files in the checkout (relative paths)
            tree: Directory tree of the checkout
            read_manifest: Returns a file's content by relative path, or None

        Returns:
            ClassificationResult (``unknown`` with confidence 0 when no signal fires)
        """
        return self._classify(files, tree, read_manifest, detect_sub_types=True)

    def _classify(
        self,
        files: list[FileInfo],
        tree: DirectoryNode | None,
        read_manifest: ManifestReader,
        detect_sub_types: bool,
    ) -> ClassificationResult:
        index = _FileIndex(files, tree)
        manifests = read_manifests(read_manifest)

        indicators: list[Indicator] = []
        indicators.extend(self._file_indicators(index))
        indicators.extend(self._dependency_indicators(manifests))
        indicators.extend(self._pattern_indicators(manifests))
        indicators.extend(self._structure_indicators(index))

        scores = self.score(indicators)
        primary_type, confidence = self.select_primary(scores)
        tech_stack = self.detect_tech_stack(index, manifests)

        sub_types: tuple[ProjectType, ...] | None = None
        if primary_type == ProjectType.MONOREPO and detect_sub_types:
            sub_types = self._monorepo_sub_types(files, tree, read_manifest)

        reported = tuple(i for i in indicators if i.confidence > REPORT_THRESHOLD)
        logger.debug(
            "Classified as %s (confidence %.2f, %d indicators, %d technologies)",
            primary_type.value,
            confidence,
            len(indicators),
            len(tech_stack),
        )
        return ClassificationResult(
            primary_type=primary_type,
            confidence=confidence,
            tech_stack=frozenset(tech_stack),
            indicators=reported,
            sub_types=sub_types,
            scores=scores,
        )

    # =========================================================================
    # Signal sources
    # =========================================================================

    def _file_indicators(self, index: _FileIndex) -> list[Indicator]:
        indicators: list[Indicator] = []
        for project_type, patterns in TYPE_FILE_PATTERNS.items():
            for pattern in patterns:
                if pattern.endswith("/"):
                    dir_name = pattern[:-1]
                    path = index.first_path_under(dir_name)
                    if path is not None or index.has_directory(dir_name):
                        indicators.append(
                            Indicator(
                                kind=SignalKind.FILE,
                                name=pattern,
                                confidence=DIRECTORY_CONFIDENCE,
                                suggested_type=project_type,
                                path=path,
                            )
                        )
                elif pattern.lower() in index.names:
                    indicators.append(
                        Indicator(
                            kind=SignalKind.FILE,
                            name=pattern,
                            confidence=FILE_NAME_CONFIDENCE,
                            suggested_type=project_type,
                        )
                    )
        return indicators

    def _dependency_indicators(self, manifests: ManifestInfo) -> list[Indicator]:
        indicators: list[Indicator] = []
        for rule in DEPENDENCY_RULES:
            declared = manifests.names(rule.ecosystem)
            if any(package in declared for package in rule.packages):
                indicators.append(
                    Indicator(
                        kind=SignalKind.DEPENDENCY,
                        name=rule.name,
                        confidence=rule.confidence,
                        suggested_type=rule.project_type,
                    )
                )
        return indicators

    def _pattern_indicators(self, manifests: ManifestInfo) -> list[Indicator]:
        indicators: list[Indicator] = []
        package_json = manifests.package_json
        if package_json is not None:
            if any(package_json.get(key) for key in ("main", "exports", "types")):
                indicators.append(
                    Indicator(
                        kind=SignalKind.PATTERN,
                        name="Library exports",
                        confidence=0.6,
                        suggested_type=ProjectType.LIBRARY,
                    )
                )
            if package_json.get("workspaces"):
                indicators.append(
                    Indicator(
                        kind=SignalKind.PATTERN,
                        name="npm workspaces",
                        confidence=0.8,
                        suggested_type=ProjectType.MONOREPO,
                    )
                )

        python_deps = manifests.names(Ecosystem.PYTHON)
        if manifests.has_python_build_system and not python_deps & PYTHON_WEB_FRAMEWORKS:
            indicators.append(
                Indicator(
                    kind=SignalKind.PATTERN,
                    name="Python build system",
                    confidence=0.5,
                    suggested_type=ProjectType.LIBRARY,
                )
            )
        return indicators

    def _structure_indicators(self, index: _FileIndex) -> list[Indicator]:
        dirs = index.top_level_dirs
        rules: list[tuple[str, bool, float, ProjectType]] = [
            (
                "monorepo-structure",
                bool(dirs & {"packages", "apps"}),
                0.7,
                ProjectType.MONOREPO,
            ),
            (
                "infra-directory",
                bool(dirs & {"terraform", "infrastructure"}),
                0.8,
                ProjectType.INFRA_AS_CODE,
            ),
            (
                "mobile-platforms",
                {"ios", "android"} <= dirs,
                0.9,
                ProjectType.MOBILE,
            ),
            (
                "frontend-structure",
                bool(dirs & {"components", "pages"}),
                0.5,
                ProjectType.FRONTEND,
            ),
            (
                "backend-structure",
                bool(dirs & {"controllers", "routes", "api"}),
                0.5,
                ProjectType.BACKEND,
            ),
            (
                "library-structure",
                bool(dirs & {"lib", "src"})
                and bool(dirs & {"test", "tests"})
                and "examples" in dirs,
                0.6,
                ProjectType.LIBRARY,
            ),
        ]
        return [
            Indicator(
                kind=SignalKind.STRUCTURE,
                name=name,
                confidence=confidence,
                suggested_type=project_type,
            )
            for name, matched, confidence, project_type in rules
            if matched
        ]

    # =========================================================================
    # Scoring
    # =========================================================================

    @staticmethod
    def score(indicators: Iterable[Indicator]) -> dict[ProjectType, float]:
        """Aggregate weighted indicator scores and normalize them to [0, 1]."""
        totals: dict[ProjectType, float] = {project_type: 0.0 for project_type in ProjectType}
        for indicator in indicators:
            totals[indicator.suggested_type] += indicator.score

        max_score = max(max(totals.values()), SCORE_FLOOR)
        return {
            project_type: min(total / max_score, 1.0) for project_type, total in totals.items()
        }

    @staticmethod
    def select_primary(scores: dict[ProjectType, float]) -> tuple[ProjectType, float]:
        """Pick the winning type from normalized scores.

        Returns:
            Tuple of (winning type, its normalized score clamped to 1)
        """
        candidates = {t: s for t, s in scores.items() if s > 0 and t != ProjectType.UNKNOWN}
        if not candidates:
            return ProjectType.UNKNOWN, 0.0

        top = max(candidates.values())
        contenders = [t for t, s in candidates.items() if top - s < TIE_EPSILON]
        winner = max(contenders, key=lambda t: (TYPE_PRIORITY[t], candidates[t]))
        return winner, min(candidates[winner], 1.0)

    # =========================================================================
    # Technology stack
    # =========================================================================

    @staticmethod
    def detect_tech_stack(index: _FileIndex, manifests: ManifestInfo) -> set[str]:
        """Detect technology tags by boolean pattern membership."""
        declared = manifests.names()
        detected: set[str] = set()

        for tech, pattern in TECH_STACK_PATTERNS.items():
            for file_pattern in pattern.files:
                if file_pattern.startswith("*."):
                    matched = file_pattern[1:].lower() in index.extensions
                elif file_pattern.endswith("/"):
                    matched = index.has_directory(file_pattern[:-1])
                else:
                    matched = file_pattern.lower() in index.names
                if matched:
                    detected.add(tech)
                    break

            if tech not in detected and any(
                dep.lower() in declared for dep in pattern.dependencies
            ):
                detected.add(tech)

        return detected

    # =========================================================================
    # Monorepo members
    # =========================================================================

    def _monorepo_sub_types(
        self,
        files: list[FileInfo],
        tree: DirectoryNode | None,
        read_manifest: ManifestReader,
    ) -> tuple[ProjectType, ...]:
        sub_types: set[ProjectType] = set()

        for root in MONOREPO_ROOTS:
            for member in self._member_dirs(root, files, tree):
                prefix = f"{member}/"
                member_files = [
                    FileInfo.from_path(f.path[len(prefix):], f.size)
                    for f in files
                    if f.path.startswith(prefix)
                ]
                member_tree = _subtree(tree, member)

                def member_reader(path: str, _prefix: str = prefix) -> str | None:
                    return read_manifest(f"{_prefix}{path}")

                result = self._classify(
                    member_files, member_tree, member_reader, detect_sub_types=False
                )
                if result.primary_type not in (ProjectType.UNKNOWN, ProjectType.MONOREPO):
                    logger.debug("Monorepo member %s is %s", member, result.primary_type.value)
                    sub_types.add(result.primary_type)

        return tuple(sorted(sub_types, key=lambda t: t.value))

    @staticmethod
    def _member_dirs(
        root: str, files: list[FileInfo], tree: DirectoryNode | None
    ) -> list[str]:
        """Return ``root/<child>`` paths of member directories, using the real case."""
        members: set[str] = set()
        if tree is not None:
            root_node = tree.child(root)
            if root_node is not None:
                for child in root_node.child_dirs():
                    members.add(child.path or f"{root_node.name}/{child.name}")
        for file in files:
            parts = PurePosixPath(file.path).parts
            if len(parts) > 2 and parts[0].lower() == root:
                members.add(f"{parts[0]}/{parts[1]}")
        return sorted(members)


def _subtree(tree: DirectoryNode | None, path: str) -> DirectoryNode | None:
    if tree is None:
        return None
    node: DirectoryNode | None = tree
    for part in PurePosixPath(path).parts:
        node = node.child(part) if node is not None else None
    return node
