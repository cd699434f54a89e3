"""Git access layer and error taxonomy shared by the sync modules."""

from .async_utils import run_sync
from .gateway import CommitData, GitObject, RepoGateway, TreeItem

__all__ = ["CommitData", "GitObject", "RepoGateway", "TreeItem", "run_sync"]
