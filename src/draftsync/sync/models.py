"""Pydantic models for the draft sync engine.

Defines the data contracts shared by the sync modules and handed to the
UI layer:

- ``Credentials``: Per-call git credentials (never persisted).
- ``RepoMetadata``: Persisted per-repository state, including the
  per-branch commit-base SHAs.
- ``ConfigFile``: One configuration file with its draft and upstream state.
- ``ConflictFile``: A draft paired with the conflicting upstream file.
- ``DiffResult``: Outcome of a three-way diff.
- ``BranchDiff``, ``FileListing``, ``RefreshResult``: Coordinator results.

All models except ``RepoMetadata`` are frozen.  ``RepoMetadata`` is owned and
mutated by a single coordinator.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class Credentials(BaseModel):
    """Repository location and the credentials used for every transport call.

    Attributes:
        repository_url: Smart-HTTP(S) URL of the shared repository.
        username: Git username; also used as commit author.
        password: Git password or token.
    """

    repository_url: str
    username: str
    password: str = Field(default="", repr=False)

    model_config = {"frozen": True}


class RepoMetadata(BaseModel):
    """Persisted state of one (repository, user) pair.

    Attributes:
        username: Logged-in user.
        repository_url: Repository URL.
        repo_name: Repository path derived from the URL.
        repo_folder: Folder name used under the repos/drafts/meta roots.
        branch_name: Currently selected branch.
        commit_base_sha: ``{branch: {repo_relative_path: blob_oid}}`` --
            the upstream blob each un-pushed draft was forked from.
        version: Metadata schema version.
    """

    username: str
    repository_url: str
    repo_name: str
    repo_folder: str
    branch_name: str
    commit_base_sha: dict[str, dict[str, str]] = {}
    version: str


class ConfigFile(BaseModel):
    """A configuration file identified by application and file name.

    Attributes:
        application_name: Application folder under the apps folder.
        file_name: File name within the application folder.
        oid: Blob id of the last synced upstream version.
        draft_content: Draft text, if a draft exists or was supplied.
        original_content: Upstream text at ``oid``.
        modified: ``True`` iff the draft differs from upstream.
        size: Size in bytes of the draft file, when known.
    """

    application_name: str
    file_name: str
    oid: str | None = None
    draft_content: str | None = None
    original_content: str | None = None
    modified: bool = False
    size: int | None = None

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        """``application_name/file_name``."""
        return f"{self.application_name}/{self.file_name}"


class ConflictFile(BaseModel):
    """A draft paired with the upstream file it conflicts with.

    Attributes:
        draft: The local (or source branch) side.
        upstream: The freshly fetched (or target branch) side.
        base_content: Content of the common base blob, when still readable.
        merged_content: Three-way merge suggestion, when a base is known.
        has_markers: Whether ``merged_content`` contains conflict markers.
    """

    draft: ConfigFile
    upstream: ConfigFile
    base_content: str | None = None
    merged_content: str | None = None
    has_markers: bool = False

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        return self.upstream.key


class DiffResult(BaseModel):
    """Classification of source-side changes against a target.

    Attributes:
        to_save: Source files to write into the target.
        to_delete: Target files the source deleted.
        conflict: ``[source, target]`` pairs changed on both sides.
    """

    to_save: list[ConfigFile] = []
    to_delete: list[ConfigFile] = []
    conflict: list[ConflictFile] = []

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not (self.to_save or self.to_delete or self.conflict)


class BranchDiff(BaseModel):
    """Branch merge preview with file contents loaded.

    Attributes:
        to_save: Source files (with ``draft_content``) to write to target.
        to_delete: Target files to delete.
        conflicts: Conflicting pairs with both contents loaded.
    """

    to_save: list[ConfigFile] = []
    to_delete: list[ConfigFile] = []
    conflicts: list[ConflictFile] = []

    model_config = {"frozen": True}


class FileListing(BaseModel):
    """Files visible on the current branch, drafts included.

    Attributes:
        files: Draft and upstream files merged by key.
        applications: Application folder names.
        app_configs: Merged per-application config (``.percyrc``).
        can_pull_request: Branch has changes not in the default branch.
        can_sync_master: Default branch has changes not in this branch.
    """

    files: list[ConfigFile] = []
    applications: list[str] = []
    app_configs: dict[str, dict] = {}
    can_pull_request: bool = False
    can_sync_master: bool = False

    model_config = {"frozen": True}


class RefreshResult(BaseModel):
    """Outcome of a refresh of all branches.

    Attributes:
        pulled_commit: Current branch commit after the fetch.
        branch_changed: Whether the current branch moved.
        default_changed: Whether the default branch moved.
    """

    pulled_commit: str
    branch_changed: bool
    default_changed: bool

    model_config = {"frozen": True}
