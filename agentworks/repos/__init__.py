from .file import FileRepoBundle, ProjectFiles, build_file_repos
from .interfaces import ArtifactStore, CardStore, ProjectStore, SessionStore, UsageStore
from .sql import SqlUsageStore, create_all, create_engine, create_sessionmaker

__all__ = [
    "ArtifactStore",
    "CardStore",
    "FileRepoBundle",
    "ProjectFiles",
    "ProjectStore",
    "SessionStore",
    "SqlUsageStore",
    "UsageStore",
    "build_file_repos",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
