"""Repository classification.

- RepositoryClassifier: Project type, confidence and tech stack detection
- read_manifests: Dependency manifest parsing shared with the task renderer
"""

from repolens.classifier.detector import RepositoryClassifier
from repolens.classifier.manifests import ManifestInfo, read_manifests

__all__ = ["ManifestInfo", "RepositoryClassifier", "read_manifests"]
