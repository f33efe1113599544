"""RepoLens - Automated repository analysis.

RepoLens clones a repository, classifies its kind and technology stack, runs
a dependency-ordered chain of analysis tasks against a reasoning service, and
merges the task outputs into one structured, cacheable analysis result.

Core pieces:
- Classifier: Weighted multi-signal project type and tech stack detection
- Task catalogue: Declarative analysis tasks with dependency ordering
- Pipeline: Stage-based job state machine with caching and notifications
"""

__version__ = "0.1.0"
__author__ = "RepoLens Contributors"
