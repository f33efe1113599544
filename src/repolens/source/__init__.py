"""Repository source access.

- SourceAccess: Capability interface used by the pipeline
- GitSourceAccess: git CLI implementation
"""

from repolens.source.base import SourceAccess, is_ignored
from repolens.source.git import GitSourceAccess, build_clone_url

__all__ = ["GitSourceAccess", "SourceAccess", "build_clone_url", "is_ignored"]
