from .tracker import Base, Engineer, Issue, Project, SyncMetadata  # noqa: F401

__all__ = [
    "Base",
    "Engineer",
    "Issue",
    "Project",
    "SyncMetadata",
]
