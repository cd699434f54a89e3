"""Draft synchronisation and conflict-resolution engine.

Public API for keeping a user's draft copies of configuration files in
step with a shared git repository, using a shallow, checkout-free clone.

Architecture
------------
Drafts are committed with **optimistic concurrency**: every draft records
the upstream blob it was forked from (its *commit-base SHA*).  Before a
commit, the branch is fetched and each recorded blob is compared with the
fetched one; a mismatch is a conflict that the user resolves explicitly.
Pushes are transactional, so a failed push never leaves the local branch
ahead of the remote.

Modules:

- ``coordinator`` -- ``SyncCoordinator``: the public operations.
- ``state``       -- ``RepoStateStore``: branch refs and JSON metadata.
- ``merge_base``  -- ``find_merge_base()`` over truncated histories.
- ``diff``        -- ``three_way_diff()`` and ``diff_branch_files()``.
- ``push``        -- ``TransactionalPush`` and ``StagedCommit``.
- ``drafts``      -- ``DraftStore`` and ``PathFinder``.
- ``listing``     -- configuration file discovery in commit trees.
- ``merger``      -- merge suggestions via ``merge3``; YAML-aware equality.
- ``models``      -- ``ConfigFile``, ``ConflictFile``, ``DiffResult``,
  ``RepoMetadata``, ``Credentials`` and the result models.

Usage example
-------------
::

    from draftsync.config import load_engine_config
    from draftsync.core.errors import ConflictError
    from draftsync.sync import Credentials, SyncCoordinator

    coordinator = SyncCoordinator(
        load_engine_config(),
        Credentials(
            repository_url="https://git.example.com/team/config.git",
            username="alice",
            password=token,
        ),
    )
    await coordinator.access_repo()

    listing = await coordinator.get_files()
    try:
        await coordinator.commit_files(edited, "Update timeouts")
    except ConflictError as exc:
        resolved = ask_user(exc.conflicts)
        await coordinator.resolve_conflicts(resolved, "Update timeouts")
"""

from .coordinator import SyncCoordinator
from .diff import diff_branch_files, three_way_diff
from .merge_base import find_merge_base
from .models import (
    BranchDiff,
    ConfigFile,
    ConflictFile,
    Credentials,
    DiffResult,
    FileListing,
    RefreshResult,
    RepoMetadata,
)
from .push import StagedCommit, TransactionalPush
from .state import RepoStateStore

__all__ = [
    "BranchDiff",
    "ConfigFile",
    "ConflictFile",
    "Credentials",
    "DiffResult",
    "FileListing",
    "RefreshResult",
    "RepoMetadata",
    "RepoStateStore",
    "StagedCommit",
    "SyncCoordinator",
    "TransactionalPush",
    "diff_branch_files",
    "find_merge_base",
    "three_way_diff",
]
