"""Conflict-aware synchronisation of drafts with the shared repository.

``SyncCoordinator`` is the engine's public surface.  It owns one user's
view of one repository:

* a shallow, checkout-free clone under ``{repos_folder}/{repo_folder}``;
* the user's drafts under ``{drafts_folder}/{repo_folder}/{branch}``;
* ``RepoMetadata`` at ``{meta_folder}/{repo_folder}.meta``, recording for
  each un-pushed draft the upstream blob it was forked from.

Committing follows optimistic concurrency: the branch is fetched, every
submitted file's recorded base blob is compared with the freshly fetched
blob, and any mismatch aborts the commit with a ``ConflictError`` listing
both sides.  The user resolves the conflict and resubmits through
``resolve_conflicts()``, which force-pushes only files that still differ.

All public methods are coroutines.  Blocking git and file I/O runs in
worker threads via ``run_sync()``; callers must serialise operations on
the same branch.
"""

from __future__ import annotations

import functools
import logging
import posixpath
from collections.abc import Iterable
from urllib.parse import quote, urlparse

from draftsync.config_schema import EngineConfig
from draftsync.core.async_utils import run_sync
from draftsync.core.errors import (
    BranchExistsError,
    ConflictError,
    FileNotFoundInRepoError,
    MetadataCorruptionError,
    ObjectNotFoundError,
    RefResolutionError,
    SyncError,
)
from draftsync.core.gateway import REMOTE, RepoGateway
from draftsync.file_handler import decode_bytes
from draftsync.sync.diff import FileMap, three_way_diff
from draftsync.sync.drafts import DraftStore
from draftsync.sync.listing import (
    find_repo_yaml_files,
    flat_files,
    is_yaml_file,
    load_app_config,
    read_repo_file,
)
from draftsync.sync.merge_base import find_merge_base
from draftsync.sync.merger import attempt_merge, contents_equal
from draftsync.sync.models import (
    BranchDiff,
    ConfigFile,
    ConflictFile,
    Credentials,
    DiffResult,
    FileListing,
    RefreshResult,
    RepoMetadata,
)
from draftsync.sync.push import StagedCommit, TransactionalPush
from draftsync.sync.state import RepoStateStore

logger = logging.getLogger(__name__)

COMMIT_PREFIX = "[draftsync]"


def repo_name_from_url(url: str) -> str:
    """Return the URL path segments joined by ``/``."""
    return "/".join(part for part in urlparse(url).path.split("/") if part)


def repo_folder_name(username: str, repo_name: str) -> str:
    """Folder name shared by the clone, drafts, and metadata of a user."""
    return quote(f"{username}!{repo_name}", safe="!*'()")


def _wrap_errors(func):
    """Surface unexpected failures as ``SyncError``."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except SyncError:
            raise
        except Exception as exc:
            logger.error("%s failed: %s", func.__name__, exc)
            raise SyncError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


class SyncCoordinator:
    """One user's synchronisation session against one repository.

    Args:
        config: Engine configuration.
        credentials: Repository URL and credentials; kept in memory only.
        gateway: Optional pre-built gateway (tests inject fakes here).
    """

    def __init__(
        self,
        config: EngineConfig,
        credentials: Credentials,
        gateway: RepoGateway | None = None,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.repo_name = repo_name_from_url(credentials.repository_url)
        self.repo_folder = repo_folder_name(credentials.username, self.repo_name)
        self.repo_dir = config.repos_folder / self.repo_folder

        self.gateway = gateway or RepoGateway(
            self.repo_dir, credentials, proxy=config.cors_proxy
        )
        self.state = RepoStateStore(
            self.gateway,
            config.meta_folder / f"{self.repo_folder}.meta",
            config.repo_metadata_version,
        )
        self.drafts = DraftStore(
            config.drafts_folder / self.repo_folder,
            config.yaml_apps_folder,
            config.yaml_extensions,
        )
        self.pusher = TransactionalPush(self.gateway, self.state)
        self.metadata: RepoMetadata | None = None

    @property
    def author(self) -> str:
        username = self.credentials.username
        return f"{username} <{username}>"

    def close(self) -> None:
        self.gateway.close()

    # ------------------------------------------------------------------
    # Repository access and refresh
    # ------------------------------------------------------------------

    @_wrap_errors
    async def access_repo(self) -> RepoMetadata:
        """Clone the repository, or fetch all branches of an existing clone.

        An existing clone is reused only if its metadata is readable and
        of the current version; otherwise it is deleted and cloned again.
        Commit-base SHAs of a reused clone are kept.  The session always
        starts on the default branch.
        """
        default = self.config.default_branch
        existing: RepoMetadata | None = None

        if await run_sync(self.gateway.exists):
            try:
                existing = await run_sync(self.state.load_metadata)
            except MetadataCorruptionError as exc:
                logger.warning(
                    "%s exists but metadata is broken, will clone again: %s",
                    self.repo_dir,
                    exc,
                )
            else:
                if existing is None:
                    logger.warning(
                        "%s exists but metadata is missing, will clone again",
                        self.repo_dir,
                    )
            if existing is None:
                await run_sync(self.gateway.destroy)

        if existing is None:
            try:
                await run_sync(
                    self.gateway.clone,
                    self.credentials.repository_url,
                    default,
                    self.config.clone_depth,
                    True,
                )
            except BaseException:
                self.gateway.destroy()
                raise
        else:
            await self._fetch_all_branches(existing)

        await run_sync(self.state.sync_head_commit, default)
        await run_sync(self.state.write_head_ref, default)
        await run_sync(self.drafts.ensure_root)

        metadata = RepoMetadata(
            username=self.credentials.username,
            repository_url=self.credentials.repository_url,
            repo_name=self.repo_name,
            repo_folder=self.repo_folder,
            branch_name=default,
            commit_base_sha=existing.commit_base_sha if existing else {},
            version=self.config.repo_metadata_version,
        )
        await run_sync(self.state.save_metadata, metadata)
        self.metadata = metadata
        return metadata

    @_wrap_errors
    async def refresh(self) -> RefreshResult:
        """Fetch all branches and move the current branch to its remote head.

        Raises:
            RefResolutionError: With ``branch_deleted=True`` if the current
                branch no longer exists upstream.
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name
        last_commit = await run_sync(self.state.get_remote_commit, branch)

        default_changed, branch_deleted = await self._fetch_all_branches(metadata)
        if branch_deleted:
            logger.warning("Branch %s has been deleted in remote repo", branch)
            raise RefResolutionError(
                f"Branch {branch} has been deleted in remote repo",
                ref=f"refs/heads/{branch}",
                branch_deleted=True,
            )

        pulled = await run_sync(self.state.sync_head_commit, branch)
        return RefreshResult(
            pulled_commit=pulled,
            branch_changed=pulled != last_commit,
            default_changed=default_changed,
        )

    async def _fetch_branch(
        self, branch: str, single_branch: bool
    ) -> tuple[str, bool]:
        """Fetch *branch* and sync its local head.

        Returns:
            ``(pulled_commit, changed)``.  A branch missing upstream is
            logged and reported unchanged.
        """
        last_commit = await run_sync(self.state.get_remote_commit, branch)
        try:
            await run_sync(self.gateway.fetch, branch, single_branch)
        except RefResolutionError:
            logger.warning(
                "Ref missing when fetching %s, remote branch may have been deleted",
                branch,
            )
            return last_commit, False

        pulled = await run_sync(self.state.sync_head_commit, branch)
        return pulled, pulled != last_commit

    async def _fetch_all_branches(
        self, metadata: RepoMetadata
    ) -> tuple[bool, bool]:
        """Fetch every branch and prune branches deleted upstream.

        Returns:
            ``(default_changed, current_branch_deleted)``.
        """
        _, default_changed = await self._fetch_branch(
            self.config.default_branch, single_branch=False
        )
        fetched = await run_sync(self.gateway.list_branches, REMOTE)
        remote = set(await run_sync(self.gateway.get_remote_branches))
        remote.add("HEAD")

        for branch in fetched:
            if branch in remote:
                continue
            logger.warning(
                "Branch %s was deleted upstream, removing local refs and drafts",
                branch,
            )
            await run_sync(self.gateway.delete_ref, f"refs/heads/{branch}")
            await run_sync(self.gateway.delete_ref, f"refs/remotes/{REMOTE}/{branch}")
            await run_sync(self.drafts.remove_branch, branch)
            await run_sync(self.state.clear_branch, metadata, branch)

        return default_changed, metadata.branch_name not in remote

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    @_wrap_errors
    async def list_branches(self) -> list[str]:
        """Local and remote-tracking branch names, minus locked ones."""
        local = await run_sync(self.gateway.list_branches)
        remote = await run_sync(self.gateway.list_branches, REMOTE)
        locked = set(self.config.locked_branches)
        return sorted(
            {b for b in (*local, *remote) if b != "HEAD" and b not in locked}
        )

    @_wrap_errors
    async def checkout_branch(self, type: str, branch: str) -> None:
        """Switch to an existing branch or create a new one.

        Args:
            type: ``"switch"`` or ``"create"``.  A created branch starts at
                the default branch and is pushed with an empty commit.
            branch: Branch name.

        Raises:
            BranchExistsError: If creating a branch that exists upstream.
        """
        metadata = await self._require_metadata()

        if type == "create":
            if branch in await run_sync(self.gateway.get_remote_branches):
                raise BranchExistsError(f"{branch} already exists")

            commit = await run_sync(
                self.state.sync_head_commit, self.config.default_branch, branch
            )
            previous = await run_sync(self.gateway.current_branch)
            await run_sync(self.state.write_head_ref, branch)

            async def create() -> str:
                return await run_sync(
                    self._commit,
                    branch,
                    commit,
                    f"{COMMIT_PREFIX} Create Branch {branch}",
                )

            try:
                await self.pusher.do_push(branch, commit, create)
            except BaseException:
                if previous:
                    self.state.write_head_ref(previous)
                self.gateway.delete_ref(f"refs/heads/{branch}")
                raise
        elif type == "switch":
            await run_sync(self.state.sync_head_commit, branch)
            await run_sync(self.state.write_head_ref, branch)
        else:
            raise ValueError(f"Unknown checkout type: {type!r}")

        await run_sync(self.gateway.set_branch_tracking, branch)
        metadata.branch_name = branch
        await run_sync(self.state.save_metadata, metadata)
        logger.info("Checked out branch %s (%s)", branch, type)

    # ------------------------------------------------------------------
    # Files and drafts
    # ------------------------------------------------------------------

    @_wrap_errors
    async def get_files(self) -> FileListing:
        """List drafts and upstream files of the current branch.

        Never loads file content.  On a non-default branch the listing
        also tells whether the branch has changes the default branch lacks
        (``can_pull_request``) and vice versa (``can_sync_master``).
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name
        commit = await run_sync(self.state.get_remote_commit, branch)

        draft_files, applications = await run_sync(self.drafts.list_drafts, branch)
        branch_files = await run_sync(self._find_files, commit)

        files = {f.key: f for f in draft_files}
        for app, app_files in branch_files.items():
            if not app:
                continue
            if app not in applications:
                applications.append(app)
            for repo_file in app_files:
                if not is_yaml_file(repo_file.file_name, self.config.yaml_extensions):
                    continue
                draft = files.get(repo_file.key)
                if draft is None:
                    files[repo_file.key] = repo_file
                else:
                    files[repo_file.key] = draft.model_copy(
                        update={"oid": repo_file.oid}
                    )

        app_configs = {}
        for app in applications:
            app_configs[app] = await run_sync(
                load_app_config,
                self.gateway,
                commit,
                self.config.yaml_apps_folder,
                self.config.app_config_file,
                app,
            )

        can_pull_request = can_sync_master = False
        if branch != self.config.default_branch:
            default_commit = await run_sync(
                self.state.get_remote_commit, self.config.default_branch
            )
            default_files = flat_files(await run_sync(self._find_files, default_commit))
            flat_branch = flat_files(branch_files)
            merge_base = await self._merge_base(default_commit, commit)
            base_files = await run_sync(
                self._load_base_files,
                merge_base,
                {commit: flat_branch, default_commit: default_files},
            )
            can_pull_request = not three_way_diff(
                flat_branch, default_files, base_files, merge_base, commit
            ).is_empty
            can_sync_master = not three_way_diff(
                default_files, flat_branch, base_files, merge_base, default_commit
            ).is_empty

        return FileListing(
            files=sorted(files.values(), key=lambda f: f.key),
            applications=sorted(applications),
            app_configs=app_configs,
            can_pull_request=can_pull_request,
            can_sync_master=can_sync_master,
        )

    @_wrap_errors
    async def get_file_content(self, file: ConfigFile) -> ConfigFile:
        """Load the upstream and draft content of *file*.

        A draft equal to upstream is deleted and its commit-base SHA
        cleared.

        Raises:
            FileNotFoundInRepoError: If neither version exists.
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name
        path = self._repo_file_path(file)

        commit = await run_sync(self.state.get_remote_commit, branch)
        content, oid = await run_sync(read_repo_file, self.gateway, commit, path)
        draft = await run_sync(self.drafts.read, file, branch)

        if content is None and draft is None:
            raise FileNotFoundInRepoError(f"File '{file.key}' does not exist")

        modified = draft is not None and not contents_equal(content, draft)
        if draft is not None and not modified:
            await run_sync(self.drafts.remove, file, branch)
            await run_sync(
                self.state.save_commit_base_sha, metadata, {path: ""}, branch
            )
            draft = None

        return file.model_copy(
            update={
                "oid": oid if content is not None else file.oid,
                "original_content": content,
                "draft_content": draft,
                "modified": modified,
            }
        )

    @_wrap_errors
    async def save_draft(self, file: ConfigFile) -> ConfigFile:
        """Write or discard the draft of *file* according to ``modified``.

        A new draft records ``file.oid`` as its commit-base SHA unless one
        is already recorded.
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name
        path = self._repo_file_path(file)

        if not file.modified:
            if await run_sync(self.drafts.remove, file, branch):
                logger.warning(
                    "Draft file '%s' found to have same content as repo, deleted",
                    file.key,
                )
            await run_sync(
                self.state.save_commit_base_sha, metadata, {path: ""}, branch
            )
            return file

        if file.draft_content is None:
            raise SyncError(f"Modified file '{file.key}' has no draft content")
        size = await run_sync(self.drafts.write, file, branch, file.draft_content)

        recorded = metadata.commit_base_sha.get(branch, {}).get(path)
        if not recorded and file.oid:
            await run_sync(
                self.state.save_commit_base_sha, metadata, {path: file.oid}, branch
            )
        return file.model_copy(update={"size": size})

    @_wrap_errors
    async def delete_file(self, file: ConfigFile) -> bool:
        """Delete *file* upstream (if present) and drop its draft.

        Returns:
            Whether fetching the branch pulled new commits.
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name
        path = self._repo_file_path(file)
        pulled_changed = False

        commit = await run_sync(self.state.get_remote_commit, branch)
        if await run_sync(self._repo_file_exists, commit, path):
            pulled, pulled_changed = await self._fetch_branch(branch, True)

            # The file may have been deleted upstream meanwhile
            if await run_sync(self._repo_file_exists, pulled, path):

                async def delete() -> str:
                    return await run_sync(
                        self._commit,
                        branch,
                        pulled,
                        f"{COMMIT_PREFIX} Delete {file.key}",
                        delete=[path],
                    )

                await self.pusher.do_push(branch, pulled, delete)

        await run_sync(self.drafts.remove, file, branch)
        await run_sync(self.state.save_commit_base_sha, metadata, {path: ""}, branch)
        return pulled_changed

    # ------------------------------------------------------------------
    # Commit and conflict resolution
    # ------------------------------------------------------------------

    @_wrap_errors
    async def commit_files(
        self,
        files: list[ConfigFile],
        message: str,
        force_push: bool = False,
    ) -> list[ConfigFile]:
        """Commit drafts to the current branch with an optimistic check.

        For every file, the base blob (recorded commit-base SHA, else
        ``file.oid``) is compared with the blob in the freshly fetched
        commit.  A file is in conflict when upstream gained a file the
        draft did not know about, or replaced the base blob.

        Args:
            files: Files to commit; ``draft_content`` defaults to the
                stored draft.
            message: Commit message.
            force_push: Skip the conflict check and force the push.

        Returns:
            The committed files with ``modified=False``.

        Raises:
            ConflictError: Listing every conflicting file.  Nothing is
                committed and the drafts are left untouched; the base SHAs
                used for the check are persisted.
        """
        metadata = await self._require_metadata()
        branch = metadata.branch_name

        pulled, _ = await self._fetch_branch(branch, True)
        upstream: FileMap = {}
        if not force_push:
            upstream = flat_files(await run_sync(self._find_files, pulled))

        commit_base = dict(metadata.commit_base_sha.get(branch, {}))
        prepared: list[ConfigFile] = []
        conflicts: list[ConflictFile] = []

        for file in files:
            path = self._repo_file_path(file)
            if file.draft_content is None:
                draft = await run_sync(self.drafts.read, file, branch)
                if draft is None:
                    raise FileNotFoundInRepoError(
                        f"Draft of '{file.key}' does not exist"
                    )
                file = file.model_copy(update={"draft_content": draft})
            prepared.append(file)
            if force_push:
                continue

            old_oid = commit_base.get(path) or file.oid
            if old_oid:
                commit_base[path] = old_oid
            new_file = upstream.get(file.key)
            new_oid = new_file.oid if new_file else None

            if new_oid and new_oid != old_oid:
                conflicts.append(
                    await run_sync(
                        self._build_conflict, file, old_oid, pulled, new_oid
                    )
                )

        if conflicts:
            await run_sync(
                self.state.save_commit_base_sha, metadata, commit_base, branch
            )
            logger.info(
                "Commit on %s aborted, %d file(s) in conflict",
                branch,
                len(conflicts),
            )
            raise ConflictError(conflicts)

        async def commit() -> str:
            return await run_sync(
                self._commit,
                branch,
                pulled,
                message,
                save=[(self._repo_file_path(f), f.draft_content) for f in prepared],
            )

        await self.pusher.do_push(branch, pulled, commit, force_push)

        cleared = {}
        committed = []
        for file in prepared:
            await run_sync(self.drafts.remove, file, branch)
            cleared[self._repo_file_path(file)] = ""
            committed.append(
                file.model_copy(
                    update={
                        "modified": False,
                        "original_content": file.draft_content,
                        "draft_content": None,
                    }
                )
            )
        await run_sync(self.state.save_commit_base_sha, metadata, cleared, branch)
        return committed

    @_wrap_errors
    async def resolve_conflicts(
        self, files: list[ConfigFile], message: str
    ) -> list[ConfigFile]:
        """Apply the user's resolution of a ``ConflictError``.

        Each file carries the chosen content in ``draft_content`` and the
        upstream content in ``original_content``.  Files whose resolution
        equals upstream just drop their draft, without any network call;
        the rest are force-pushed as one commit.
        """
        modified: list[ConfigFile] = []
        result: list[ConfigFile] = []

        for file in files:
            is_modified = not contents_equal(file.draft_content, file.original_content)
            file = file.model_copy(update={"modified": is_modified})
            if is_modified:
                modified.append(file)
            else:
                result.append(await self.save_draft(file))

        if modified:
            committed = await self.commit_files(modified, message, force_push=True)
            result = committed + result
        return result

    # ------------------------------------------------------------------
    # Branch merge
    # ------------------------------------------------------------------

    @_wrap_errors
    async def branch_diff(self, src: str, target: str) -> BranchDiff:
        """Preview merging *src* into *target*, with contents loaded."""
        src_commit = await run_sync(self.state.get_remote_commit, src)
        target_commit = await run_sync(self.state.get_remote_commit, target)

        src_files = flat_files(await run_sync(self._find_files, src_commit))
        target_files = flat_files(await run_sync(self._find_files, target_commit))
        merge_base = await self._merge_base(src_commit, target_commit)
        base_files = await run_sync(
            self._load_base_files,
            merge_base,
            {target_commit: target_files, src_commit: src_files},
        )
        diff = three_way_diff(
            src_files, target_files, base_files, merge_base, src_commit
        )

        return await run_sync(
            self._load_diff_contents, diff, src_commit, target_commit
        )

    @_wrap_errors
    async def merge_branch(self, src: str, target: str, diff: BranchDiff) -> str:
        """Apply *diff* to *target* as a merge commit of *src*.

        The commit's first parent is the target head and its second the
        source head, so later merge-base searches see the merge.

        Returns:
            The merge commit id.
        """
        source_commit = await run_sync(self.state.get_remote_commit, src)
        target_commit = await run_sync(self.state.get_remote_commit, target)

        save = []
        for file in diff.to_save:
            content = file.draft_content
            if content is None:
                content, _ = await run_sync(
                    read_repo_file,
                    self.gateway,
                    source_commit,
                    self._repo_file_path(file),
                )
            save.append((self._repo_file_path(file), content))
        delete = [self._repo_file_path(f) for f in diff.to_delete]

        async def merge() -> str:
            return await run_sync(
                self._commit,
                target,
                target_commit,
                f"{COMMIT_PREFIX} Merge {src} into {target}",
                save=save,
                delete=delete,
                extra_parents=[source_commit],
            )

        return await self.pusher.do_push(target, target_commit, merge)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_metadata(self) -> RepoMetadata:
        if self.metadata is None:
            self.metadata = await run_sync(self.state.load_metadata)
        if self.metadata is None:
            raise SyncError("Repository has not been accessed yet")
        return self.metadata

    def _repo_file_path(self, file: ConfigFile) -> str:
        return posixpath.join(
            self.config.yaml_apps_folder, file.application_name, file.file_name
        )

    def _find_files(self, commit: str) -> dict[str, list[ConfigFile]]:
        return find_repo_yaml_files(
            self.gateway,
            commit,
            self.config.yaml_apps_folder,
            self.config.yaml_extensions,
            self.config.app_config_file,
        )

    def _read_parents(self, commit: str) -> list[str] | None:
        try:
            obj = self.gateway.read_object(commit)
        except ObjectNotFoundError:
            return None
        return list(obj.data.parents)

    async def _merge_base(self, src_commit: str, target_commit: str) -> str | None:
        return await run_sync(
            find_merge_base,
            self._read_parents,
            src_commit,
            target_commit,
            self.config.max_history_depth,
        )

    def _load_base_files(
        self, merge_base: str | None, known: dict[str, FileMap]
    ) -> FileMap | None:
        if merge_base is None:
            return None
        if merge_base in known:
            return known[merge_base]
        try:
            return flat_files(self._find_files(merge_base))
        except ObjectNotFoundError:
            logger.info("Merge base %s is beyond the shallow boundary", merge_base)
            return None

    def _repo_file_exists(self, commit: str, path: str) -> bool:
        try:
            self.gateway.read_object(commit, path)
        except ObjectNotFoundError:
            return False
        return True

    def _read_blob(self, oid: str) -> str | None:
        try:
            obj = self.gateway.read_object(oid)
        except ObjectNotFoundError:
            logger.debug("Base blob %s not available locally", oid)
            return None
        return decode_bytes(obj.data)[0] if obj.type == "blob" else None

    def _build_conflict(
        self,
        file: ConfigFile,
        base_oid: str | None,
        pulled: str,
        new_oid: str,
    ) -> ConflictFile:
        upstream_content, _ = read_repo_file(
            self.gateway, pulled, self._repo_file_path(file)
        )
        upstream = ConfigFile(
            application_name=file.application_name,
            file_name=file.file_name,
            oid=new_oid,
            original_content=upstream_content,
        )
        base_content = self._read_blob(base_oid) if base_oid else None

        merged_content, has_markers = None, False
        if base_content is not None and upstream_content is not None:
            merged_content, has_markers = attempt_merge(
                base_content, file.draft_content, upstream_content
            )
        return ConflictFile(
            draft=file,
            upstream=upstream,
            base_content=base_content,
            merged_content=merged_content,
            has_markers=has_markers,
        )

    def _load_diff_contents(
        self, diff: DiffResult, src_commit: str, target_commit: str
    ) -> BranchDiff:
        def content(commit: str, file: ConfigFile) -> str | None:
            return read_repo_file(
                self.gateway, commit, self._repo_file_path(file)
            )[0]

        to_save = [
            f.model_copy(update={"draft_content": content(src_commit, f)})
            for f in diff.to_save
        ]
        conflicts = [
            ConflictFile(
                draft=c.draft.model_copy(
                    update={"draft_content": content(src_commit, c.draft)}
                ),
                upstream=c.upstream.model_copy(
                    update={"original_content": content(target_commit, c.upstream)}
                ),
            )
            for c in diff.conflict
        ]
        return BranchDiff(
            to_save=to_save, to_delete=list(diff.to_delete), conflicts=conflicts
        )

    def _commit(
        self,
        branch: str,
        base_commit: str,
        message: str,
        save: Iterable[tuple[str, str]] = (),
        delete: Iterable[str] = (),
        extra_parents: Iterable[str] = (),
    ) -> str:
        staged = StagedCommit(self.gateway, base_commit)
        for path, content in save:
            staged.add(path, content)
        for path in delete:
            staged.remove(path)
        return staged.commit(branch, message, self.author, extra_parents)
