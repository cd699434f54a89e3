"""Thin, stateless wrapper around dulwich for checkout-free repository access.

The local repository is a shallow clone with no working tree: file content
is always read from the object store through a commit's tree, and commits
are built by writing blob, tree, and commit objects directly.  Every method
is synchronous; async callers bridge them with ``run_sync()``.

Oids cross this boundary as hex strings.  Transport failures are translated
into the engine taxonomy by ``git_errors()``; local ref and object misses
raise ``RefResolutionError`` and ``ObjectNotFoundError``.
"""

from __future__ import annotations

import logging
import shutil
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from dulwich import porcelain
from dulwich.client import get_transport_and_path
from dulwich.config import ConfigDict
from dulwich.errors import NotTreeError
from dulwich.object_store import tree_lookup_path
from dulwich.objects import S_ISGITLINK, Blob, Commit, Tree
from dulwich.repo import Repo

from draftsync.core.errors import (
    ObjectNotFoundError,
    RefResolutionError,
    git_errors,
)

if TYPE_CHECKING:
    from draftsync.sync.models import Credentials

logger = logging.getLogger(__name__)

REMOTE = "origin"
_HEADS = b"refs/heads/"


@dataclass(frozen=True)
class TreeItem:
    """One entry of a git tree object."""

    path: str
    oid: str
    type: str
    mode: int = 0o100644


@dataclass(frozen=True)
class CommitData:
    """Parsed commit object."""

    tree: str
    parents: tuple[str, ...]
    message: str
    author: str


@dataclass(frozen=True)
class GitObject:
    """An object read from the store.

    ``data`` is ``bytes`` for blobs, ``list[TreeItem]`` for trees and
    ``CommitData`` for commits.
    """

    oid: str
    type: str
    data: bytes | list[TreeItem] | CommitData


def _entry_type(mode: int) -> str:
    if S_ISGITLINK(mode):
        return "commit"
    if stat.S_ISDIR(mode):
        return "tree"
    return "blob"


class RepoGateway:
    """Git operations for one local repository directory.

    Args:
        repo_dir: Directory holding the clone (only ``.git`` is populated).
        credentials: Repository URL and credentials used for transport.
        proxy: Optional HTTP proxy URL applied to every transport call.
    """

    def __init__(
        self,
        repo_dir: Path,
        credentials: Credentials,
        proxy: str | None = None,
    ) -> None:
        self.repo_dir = repo_dir
        self.credentials = credentials
        self.proxy = proxy
        self._repo: Repo | None = None

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            self._repo = Repo(str(self.repo_dir))
        return self._repo

    # ------------------------------------------------------------------
    # Local repository lifecycle
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        """Return ``True`` if a clone is present on disk."""
        return (self.repo_dir / ".git").is_dir()

    def close(self) -> None:
        if self._repo is not None:
            self._repo.close()
            self._repo = None

    def destroy(self) -> None:
        """Remove the local clone entirely."""
        self.close()
        if self.repo_dir.exists():
            shutil.rmtree(self.repo_dir)

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    def clone(
        self,
        url: str,
        ref: str,
        depth: int = 1,
        no_checkout: bool = True,
    ) -> None:
        """Shallow-clone *ref* of *url* into ``repo_dir``."""
        self.repo_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Cloning %s (branch=%s, depth=%d)", url, ref, depth
        )
        with git_errors("clone"):
            repo = porcelain.clone(
                url,
                str(self.repo_dir),
                checkout=not no_checkout,
                depth=depth,
                branch=ref.encode("utf-8"),
                config=self._transport_config(),
                errstream=porcelain.NoneStream(),
                **self._auth(),
            )
        self._repo = repo
        if self.proxy:
            config = repo.get_config()
            config.set((b"http",), b"proxy", self.proxy.encode("utf-8"))
            config.write_to_path()

    def fetch(self, ref: str, single_branch: bool) -> None:
        """Fetch new commits and update the remote-tracking refs.

        Args:
            ref: Branch that must exist on the remote.
            single_branch: Fetch *ref* only, or every remote branch.

        Raises:
            RefResolutionError: If *ref* does not exist on the remote.
        """
        repo = self.repo
        head_ref = _HEADS + ref.encode("utf-8")

        def determine_wants(refs, depth=None):
            if single_branch:
                wanted = [refs[head_ref]] if refs.get(head_ref) else []
            else:
                wanted = [
                    sha
                    for name, sha in refs.items()
                    if name.startswith(_HEADS) and sha
                ]
            return [sha for sha in wanted if sha not in repo.object_store]

        with git_errors("fetch"):
            client, path = get_transport_and_path(
                self.credentials.repository_url,
                config=repo.get_config_stack(),
                **self._auth(),
            )
            result = client.fetch(
                path, repo, determine_wants=determine_wants
            )

        remote_refs = result.refs
        if not remote_refs.get(head_ref):
            raise RefResolutionError(
                f"Remote branch {ref} not found", ref=f"refs/heads/{ref}"
            )

        for name, sha in remote_refs.items():
            if not name.startswith(_HEADS) or not sha:
                continue
            if single_branch and name != head_ref:
                continue
            tracking = f"refs/remotes/{REMOTE}/".encode() + name[len(_HEADS):]
            repo.refs[tracking] = sha
        logger.info(
            "Fetched %s (single_branch=%s)", ref, single_branch
        )

    def push(self, ref: str, force: bool = False) -> None:
        """Push local branch *ref* to the same branch on origin."""
        refspec = f"refs/heads/{ref}:refs/heads/{ref}".encode("utf-8")
        with git_errors("push"):
            porcelain.push(
                self.repo,
                remote_location=REMOTE,
                refspecs=[refspec],
                force=force,
                errstream=porcelain.NoneStream(),
                **self._auth(),
            )
        logger.info("Pushed %s (force=%s)", ref, force)

    def get_remote_branches(self) -> list[str]:
        """List branch names currently present on the remote."""
        with git_errors("ls-remote"):
            client, path = get_transport_and_path(
                self.credentials.repository_url,
                config=self.repo.get_config_stack(),
                **self._auth(),
            )
            refs = client.get_refs(path)
        # Newer dulwich wraps the mapping in an LsRemoteResult.
        refs = getattr(refs, "refs", refs)
        return sorted(
            name[len(_HEADS):].decode("utf-8")
            for name in refs
            if name.startswith(_HEADS)
        )

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def read_object(
        self, oid: str, filepath: str | None = None
    ) -> GitObject:
        """Read an object, or the object at *filepath* in commit *oid*.

        Raises:
            ObjectNotFoundError: If the object or path is absent locally.
        """
        store = self.repo.object_store
        try:
            sha = oid.encode("ascii")
            if filepath:
                commit = store[sha]
                if not isinstance(commit, Commit):
                    raise ObjectNotFoundError(f"{oid} is not a commit")
                _, sha = tree_lookup_path(
                    store.__getitem__,
                    commit.tree,
                    filepath.encode("utf-8"),
                )
            obj = store[sha]
        except (KeyError, NotTreeError) as exc:
            target = f"{oid}:{filepath}" if filepath else oid
            raise ObjectNotFoundError(
                f"Object {target} not found"
            ) from exc

        object_id = obj.id.decode("ascii")
        if isinstance(obj, Commit):
            return GitObject(
                object_id,
                "commit",
                CommitData(
                    tree=obj.tree.decode("ascii"),
                    parents=tuple(p.decode("ascii") for p in obj.parents),
                    message=obj.message.decode("utf-8", "replace"),
                    author=obj.author.decode("utf-8", "replace"),
                ),
            )
        if isinstance(obj, Tree):
            return GitObject(
                object_id,
                "tree",
                [
                    TreeItem(
                        path=entry.path.decode("utf-8"),
                        oid=entry.sha.decode("ascii"),
                        type=_entry_type(entry.mode),
                        mode=entry.mode,
                    )
                    for entry in obj.iteritems()
                ],
            )
        if isinstance(obj, Blob):
            return GitObject(object_id, "blob", obj.data)
        return GitObject(
            object_id, obj.type_name.decode("ascii"), obj.as_raw_string()
        )

    def iter_tree(self, tree_oid: str) -> list[TreeItem]:
        """Return the entries of tree *tree_oid*."""
        obj = self.read_object(tree_oid)
        if obj.type != "tree":
            raise ObjectNotFoundError(f"{tree_oid} is not a tree")
        return obj.data

    def list_files(self, commit: str, prefix: str = "") -> dict[str, str]:
        """Map every blob path under *prefix* in *commit* to its oid."""
        tree = self.read_object(commit).data.tree
        if prefix:
            try:
                tree = self.read_object(commit, prefix).oid
            except ObjectNotFoundError:
                return {}
        files: dict[str, str] = {}
        pending = [(prefix.strip("/"), tree)]
        while pending:
            base, tree_oid = pending.pop()
            for item in self.iter_tree(tree_oid):
                path = f"{base}/{item.path}" if base else item.path
                if item.type == "tree":
                    pending.append((path, item.oid))
                elif item.type == "blob":
                    files[path] = item.oid
        return files

    def write_object(
        self, type: str, payload: bytes | list[TreeItem] | CommitData
    ) -> str:
        """Write a blob, tree, or commit object and return its oid."""
        if type == "blob":
            obj = Blob.from_string(payload)
        elif type == "tree":
            obj = Tree()
            for item in payload:
                obj.add(
                    item.path.encode("utf-8"),
                    item.mode,
                    item.oid.encode("ascii"),
                )
        elif type == "commit":
            obj = Commit()
            obj.tree = payload.tree.encode("ascii")
            obj.parents = [p.encode("ascii") for p in payload.parents]
            obj.author = obj.committer = payload.author.encode("utf-8")
            obj.author_time = obj.commit_time = int(time.time())
            obj.author_timezone = obj.commit_timezone = 0
            obj.encoding = b"UTF-8"
            obj.message = payload.message.encode("utf-8")
        else:
            raise ValueError(f"Unsupported object type: {type}")
        self.repo.object_store.add_object(obj)
        return obj.id.decode("ascii")

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def resolve_ref(self, ref: str) -> str:
        """Return the commit id *ref* points to."""
        try:
            return self.repo.refs[ref.encode("utf-8")].decode("ascii")
        except KeyError as exc:
            raise RefResolutionError(
                f"Could not resolve ref {ref}", ref=ref
            ) from exc

    def write_ref(self, ref: str, oid: str) -> None:
        self.repo.refs[ref.encode("utf-8")] = oid.encode("ascii")

    def write_symbolic_ref(self, ref: str, target: str) -> None:
        self.repo.refs.set_symbolic_ref(
            ref.encode("utf-8"), target.encode("utf-8")
        )

    def delete_ref(self, ref: str) -> None:
        self.repo.refs.remove_if_equals(ref.encode("utf-8"), None)

    def list_branches(self, remote: str | None = None) -> list[str]:
        """List local branches, or remote-tracking branches of *remote*."""
        base = f"refs/remotes/{remote}/" if remote else "refs/heads/"
        return sorted(
            name.decode("utf-8")
            for name in self.repo.refs.keys(base=base.encode("utf-8"))
        )

    def current_branch(self) -> str | None:
        """Return the branch HEAD points to, or ``None`` if detached."""
        target = self.repo.refs.get_symrefs().get(b"HEAD")
        if target is None or not target.startswith(_HEADS):
            return None
        return target[len(_HEADS):].decode("utf-8")

    def set_branch_tracking(self, branch: str) -> None:
        """Record origin as the upstream of *branch* in the repo config."""
        config = self.repo.get_config()
        section = (b"branch", branch.encode("utf-8"))
        config.set(section, b"remote", REMOTE.encode("utf-8"))
        config.set(section, b"merge", _HEADS + branch.encode("utf-8"))
        config.write_to_path()

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def reset_index(self) -> None:
        """Drop the index file and any stray work-tree files.

        Commits are staged in memory, so a clean state is simply "nothing
        outside ``.git`` and no index".
        """
        (self.repo_dir / ".git" / "index").unlink(missing_ok=True)
        for entry in self.repo_dir.iterdir():
            if entry.name == ".git":
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _auth(self) -> dict[str, str]:
        if not self.credentials.username:
            return {}
        return {
            "username": self.credentials.username,
            "password": self.credentials.password,
        }

    def _transport_config(self) -> ConfigDict | None:
        if not self.proxy:
            return None
        config = ConfigDict()
        config.set((b"http",), b"proxy", self.proxy.encode("utf-8"))
        return config
