from .filter_compiler import FilterCompiler
from .repository import ProgressCallback, Repository, RepositoryLifecycle, RepositoryStorable

__all__ = [
    "FilterCompiler",
    "ProgressCallback",
    "Repository",
    "RepositoryLifecycle",
    "RepositoryStorable",
]
