"""Ref and metadata persistence layer.

Two kinds of local state back every engine operation:

* **Branch refs** -- ``refs/heads/{branch}`` (local HEAD commit),
  ``refs/remotes/origin/{branch}`` (remote-tracking commit) and the symbolic
  ``HEAD``.  After any successful operation the local and remote-tracking
  refs of the affected branch point at the same commit.
* **Repository metadata** -- one JSON file per (repository, user) at
  ``{meta_folder}/{repo_folder}.meta`` holding identity fields and the
  per-branch commit-base SHAs of un-pushed drafts.

Key design choices:

* **Atomic writes** -- ``save_metadata()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Write on change** -- ``save_commit_base_sha()`` only touches disk when
  an entry was actually added, changed, or removed.
* **Corruption is explicit** -- unreadable JSON, schema errors, and stale
  versions all raise ``MetadataCorruptionError``; the coordinator recovers
  by deleting the clone and cloning again.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from draftsync.core.errors import MetadataCorruptionError
from draftsync.sync.models import RepoMetadata

if TYPE_CHECKING:
    from draftsync.core.gateway import RepoGateway

logger = logging.getLogger(__name__)


class RepoStateStore:
    """Read and write branch refs and repository metadata.

    Args:
        gateway: Gateway of the repository whose refs are managed.
        meta_path: Path of the ``.meta`` JSON file.
        version: Expected metadata schema version.
    """

    def __init__(
        self, gateway: RepoGateway, meta_path: Path, version: str
    ) -> None:
        self._gateway = gateway
        self.meta_path = meta_path
        self.version = version

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------

    def get_remote_commit(self, branch: str) -> str:
        """Return the remote-tracking commit of *branch*."""
        return self._gateway.resolve_ref(f"refs/remotes/origin/{branch}")

    def get_head_commit(self, branch: str) -> str:
        return self._gateway.resolve_ref(f"refs/heads/{branch}")

    def write_head_commit(self, branch: str, oid: str) -> None:
        self._gateway.write_ref(f"refs/heads/{branch}", oid)

    def write_remote_commit(self, branch: str, oid: str) -> None:
        self._gateway.write_ref(f"refs/remotes/origin/{branch}", oid)

    def write_head_ref(self, branch: str) -> None:
        """Point the symbolic ``HEAD`` at *branch*."""
        self._gateway.write_symbolic_ref("HEAD", f"refs/heads/{branch}")

    def sync_head_commit(self, src: str, target: str | None = None) -> str:
        """Set the local head of *target* to the remote commit of *src*.

        *target* defaults to *src*.  Returns the commit written.
        """
        oid = self.get_remote_commit(src)
        self.write_head_commit(target or src, oid)
        return oid

    # ------------------------------------------------------------------
    # Metadata persistence
    # ------------------------------------------------------------------

    def load_metadata(self) -> RepoMetadata | None:
        """Load metadata from disk.

        Returns:
            The metadata, or ``None`` if no metadata file exists yet.

        Raises:
            MetadataCorruptionError: If the file cannot be parsed or was
                written by another schema version.
        """
        if not self.meta_path.exists():
            return None
        try:
            with open(self.meta_path, encoding="utf-8") as fh:
                metadata = RepoMetadata.model_validate(json.load(fh))
        except (OSError, ValueError, ValidationError) as exc:
            raise MetadataCorruptionError(
                f"Unreadable repository metadata {self.meta_path}: {exc}"
            ) from exc
        if metadata.version != self.version:
            raise MetadataCorruptionError(
                f"Repository metadata version {metadata.version!r} "
                f"does not match {self.version!r}"
            )
        return metadata

    def save_metadata(self, metadata: RepoMetadata) -> None:
        """Persist *metadata* atomically.

        Creates the meta folder if it does not exist.
        """
        directory = self.meta_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(metadata.model_dump(), fh, indent=2)
            os.replace(tmp_path, self.meta_path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def delete_metadata(self) -> None:
        self.meta_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Commit-base SHAs
    # ------------------------------------------------------------------

    def save_commit_base_sha(
        self,
        metadata: RepoMetadata,
        new_shas: dict[str, str],
        branch: str,
    ) -> bool:
        """Upsert or clear commit-base SHAs of *branch*.

        An empty string value deletes the entry for that path.  Metadata
        is written only when something changed; creating the branch map
        counts as a change.

        Returns:
            ``True`` if metadata was modified and saved.
        """
        changed = False
        branch_map = metadata.commit_base_sha.get(branch)
        if branch_map is None:
            branch_map = metadata.commit_base_sha[branch] = {}
            changed = True

        for path, oid in new_shas.items():
            if oid:
                if branch_map.get(path) != oid:
                    branch_map[path] = oid
                    changed = True
            elif path in branch_map:
                del branch_map[path]
                changed = True

        if changed:
            self.save_metadata(metadata)
        return changed

    def clear_branch(self, metadata: RepoMetadata, branch: str) -> bool:
        """Drop every commit-base SHA recorded for *branch*."""
        if metadata.commit_base_sha.pop(branch, None) is None:
            return False
        self.save_metadata(metadata)
        return True
