"""Transactional commit-and-push with local rollback.

``TransactionalPush.do_push()`` brackets a caller-supplied commit action:

1. reset the index and stray work files;
2. await the action, which writes a commit and moves ``refs/heads/{branch}``;
3. push the branch.

If step 2 or 3 fails, the local branch ref is restored to the last known
commit and the index is reset before the exception propagates, so no
failure leaves the local branch ahead of the remote.  On success both the
local and the remote-tracking refs point at the new commit.

``StagedCommit`` is the staging area commit actions use.  It works purely
on objects: it starts from a commit's tree, applies additions and
removals in memory, and writes blobs, trees, and the commit.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

from draftsync.core.async_utils import run_sync
from draftsync.core.gateway import CommitData, TreeItem

if TYPE_CHECKING:
    from draftsync.core.gateway import RepoGateway
    from draftsync.sync.state import RepoStateStore

logger = logging.getLogger(__name__)

_FILE_MODE = 0o100644
_TREE_MODE = 0o040000


class StagedCommit:
    """In-memory staging area on top of an existing commit.

    Args:
        gateway: Gateway used to read the base tree and write objects.
        base_commit: Commit whose tree is the starting point; ``None``
            starts from an empty tree.
    """

    def __init__(self, gateway: RepoGateway, base_commit: str | None) -> None:
        self._gateway = gateway
        self.base_commit = base_commit
        self._entries: dict[str, TreeItem] = {}
        if base_commit:
            tree = gateway.read_object(base_commit).data.tree
            self._load_tree(tree, "")

    def _load_tree(self, tree_oid: str, prefix: str) -> None:
        for item in self._gateway.iter_tree(tree_oid):
            path = f"{prefix}{item.path}"
            if item.type == "tree":
                self._load_tree(item.oid, f"{path}/")
            else:
                self._entries[path] = item

    @property
    def paths(self) -> list[str]:
        return sorted(self._entries)

    def add(self, path: str, content: str | bytes) -> str:
        """Stage *content* at *path* and return the new blob id."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        oid = self._gateway.write_object("blob", data)
        existing = self._entries.get(path)
        mode = existing.mode if existing and existing.type == "blob" else _FILE_MODE
        self._entries[path] = TreeItem(
            path=path.rsplit("/", 1)[-1], oid=oid, type="blob", mode=mode
        )
        return oid

    def remove(self, path: str) -> bool:
        """Unstage *path*.  Returns ``True`` if it was present."""
        return self._entries.pop(path, None) is not None

    def commit(
        self,
        branch: str,
        message: str,
        author: str,
        extra_parents: Iterable[str] = (),
    ) -> str:
        """Write the staged tree and a commit, and move the branch to it.

        Args:
            branch: Local branch whose ref is updated.
            message: Commit message.
            author: ``"name <email>"`` identity for author and committer.
            extra_parents: Parents appended after the base commit, e.g. the
                source commit of a merge.

        Returns:
            The new commit id.
        """
        parents = [self.base_commit] if self.base_commit else []
        parents.extend(extra_parents)
        tree = self._write_tree()
        oid = self._gateway.write_object(
            "commit",
            CommitData(
                tree=tree,
                parents=tuple(parents),
                message=message,
                author=author,
            ),
        )
        self._gateway.write_ref(f"refs/heads/{branch}", oid)
        logger.debug("Committed %s on %s (parents=%s)", oid, branch, parents)
        return oid

    def _write_tree(self) -> str:
        root: dict = {}
        for path, item in self._entries.items():
            *dirs, _ = path.split("/")
            node = root
            for name in dirs:
                node = node.setdefault(name, {})
            node[item.path] = item
        return self._write_node(root)

    def _write_node(self, node: dict) -> str:
        items = []
        for name, child in node.items():
            if isinstance(child, dict):
                items.append(
                    TreeItem(
                        path=name,
                        oid=self._write_node(child),
                        type="tree",
                        mode=_TREE_MODE,
                    )
                )
            else:
                items.append(child)
        return self._gateway.write_object("tree", items)


class TransactionalPush:
    """Commit-and-push with rollback of the local branch ref.

    Args:
        gateway: Gateway of the repository.
        state: Ref store of the same repository.
    """

    def __init__(self, gateway: RepoGateway, state: RepoStateStore) -> None:
        self._gateway = gateway
        self._state = state

    async def do_push(
        self,
        branch: str,
        last_known_commit: str,
        commit_action: Callable[[], Awaitable[str]],
        force_push: bool = False,
    ) -> str:
        """Run *commit_action* and push its commit.

        Args:
            branch: Branch to commit on and push.
            last_known_commit: Commit the local branch is restored to when
                the action or the push fails.
            commit_action: Coroutine factory returning the new commit id.
            force_push: Push even if the remote is not an ancestor.

        Returns:
            The pushed commit id.
        """
        await run_sync(self._gateway.reset_index)
        try:
            commit = await commit_action()
            await run_sync(self._gateway.push, branch, force_push)
        except BaseException:
            # Rollback stays synchronous so it also runs on cancellation.
            logger.warning(
                "Push of %s failed, restoring %s", branch, last_known_commit
            )
            self._state.write_head_commit(branch, last_known_commit)
            self._gateway.reset_index()
            raise

        await run_sync(self._state.write_remote_commit, branch, commit)
        await run_sync(self._state.write_head_commit, branch, commit)
        await run_sync(self._gateway.reset_index)
        logger.info("Pushed commit %s to %s", commit, branch)
        return commit
