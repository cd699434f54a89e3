"""Shared pytest fixtures for draftsync tests."""

from __future__ import annotations

import hashlib
import itertools

import pytest
from dotenv import load_dotenv

from draftsync.config_schema import EngineConfig
from draftsync.core.errors import (
    ObjectNotFoundError,
    PushRejectedError,
    RefResolutionError,
)
from draftsync.core.gateway import GitObject
from draftsync.sync.models import Credentials
from draftsync.sync.push import StagedCommit

load_dotenv()

NETWORK_CALLS = {"clone", "fetch", "push", "ls-remote"}

_commit_counter = itertools.count()


# ---------------------------------------------------------------------------
# In-memory git fakes
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """Dict-backed object store with the gateway's object API."""

    def __init__(self) -> None:
        self.objects: dict[str, GitObject] = {}

    def _get(self, oid: str) -> GitObject:
        try:
            return self.objects[oid]
        except KeyError:
            raise ObjectNotFoundError(f"Object {oid} not found") from None

    def read_object(self, oid: str, filepath: str | None = None) -> GitObject:
        obj = self._get(oid)
        if not filepath:
            return obj
        if obj.type != "commit":
            raise ObjectNotFoundError(f"{oid} is not a commit")
        obj = self._get(obj.data.tree)
        for part in filepath.split("/"):
            if obj.type != "tree":
                raise ObjectNotFoundError(f"{filepath} not found")
            item = next((i for i in obj.data if i.path == part), None)
            if item is None:
                raise ObjectNotFoundError(f"{filepath} not found")
            obj = self._get(item.oid)
        return obj

    def iter_tree(self, tree_oid: str):
        return self._get(tree_oid).data

    def list_files(self, commit: str, prefix: str = "") -> dict[str, str]:
        files = {}
        pending = [("", self._get(commit).data.tree)]
        while pending:
            base, tree = pending.pop()
            for item in self.iter_tree(tree):
                path = f"{base}/{item.path}" if base else item.path
                if item.type == "tree":
                    pending.append((path, item.oid))
                else:
                    files[path] = item.oid
        return {p: o for p, o in files.items() if p.startswith(prefix)}

    def write_object(self, type: str, payload) -> str:
        if type == "blob":
            raw, data = payload, payload
        elif type == "tree":
            data = sorted(payload, key=lambda i: i.path)
            raw = repr([(i.path, i.mode, i.oid) for i in data]).encode()
        else:
            data = payload
            raw = repr((payload, next(_commit_counter))).encode()
        oid = hashlib.sha1(type.encode() + b"\0" + raw).hexdigest()
        self.objects[oid] = GitObject(oid, type, data)
        return oid

    def is_ancestor(self, ancestor: str, commit: str) -> bool:
        pending = [commit]
        seen = set()
        while pending:
            oid = pending.pop()
            if oid == ancestor:
                return True
            if oid in seen or oid not in self.objects:
                continue
            seen.add(oid)
            pending.extend(self.objects[oid].data.parents)
        return False


class FakeRemote(FakeObjectStore):
    """The shared upstream repository."""

    def __init__(self) -> None:
        super().__init__()
        self.branches: dict[str, str] = {}

    def write_ref(self, ref: str, oid: str) -> None:
        self.branches[ref.removeprefix("refs/heads/")] = oid

    def commit(
        self,
        branch: str,
        changes: dict[str, str | None],
        message: str = "upstream change",
        base: str | None = None,
    ) -> str:
        """Commit *changes* (``None`` deletes a path) on top of *branch*."""
        staged = StagedCommit(self, base or self.branches.get(branch))
        for path, content in changes.items():
            if content is None:
                staged.remove(path)
            else:
                staged.add(path, content)
        return staged.commit(branch, message, "bob <bob>")

    def content(self, branch: str, path: str) -> str | None:
        try:
            return self.read_object(self.branches[branch], path).data.decode()
        except ObjectNotFoundError:
            return None


class FakeGateway(FakeObjectStore):
    """In-memory stand-in for ``RepoGateway`` talking to a ``FakeRemote``.

    Every call is recorded in ``calls``; ``push_error`` and ``fetch_error``
    inject transport failures.
    """

    def __init__(self, remote: FakeRemote) -> None:
        super().__init__()
        self.remote = remote
        self.cloned = False
        self.refs: dict[str, str] = {}
        self.symrefs: dict[str, str] = {}
        self.tracking: dict[str, str] = {}
        self.calls: list[str] = []
        self.resets = 0
        self.push_error: Exception | None = None
        self.fetch_error: Exception | None = None

    @property
    def network_calls(self) -> list[str]:
        return [c for c in self.calls if c in NETWORK_CALLS]

    def exists(self) -> bool:
        return self.cloned

    def close(self) -> None:
        pass

    def destroy(self) -> None:
        self.calls.append("destroy")
        self.cloned = False
        self.objects.clear()
        self.refs.clear()
        self.symrefs.clear()

    def forget(self, oid: str) -> None:
        """Drop an object, as if it lay beyond the shallow boundary."""
        del self.objects[oid]

    def clone(self, url, ref, depth=1, no_checkout=True) -> None:
        self.calls.append("clone")
        if ref not in self.remote.branches:
            raise RefResolutionError(f"Remote branch {ref} not found", ref=ref)
        self.cloned = True
        self.objects.update(self.remote.objects)
        for branch, oid in self.remote.branches.items():
            self.refs[f"refs/remotes/origin/{branch}"] = oid
        self.refs[f"refs/heads/{ref}"] = self.remote.branches[ref]
        self.symrefs["HEAD"] = f"refs/heads/{ref}"

    def fetch(self, ref: str, single_branch: bool) -> None:
        self.calls.append("fetch")
        if self.fetch_error is not None:
            raise self.fetch_error
        if ref not in self.remote.branches:
            raise RefResolutionError(f"Remote branch {ref} not found", ref=ref)
        self.objects.update(self.remote.objects)
        for branch, oid in self.remote.branches.items():
            if single_branch and branch != ref:
                continue
            self.refs[f"refs/remotes/origin/{branch}"] = oid

    def push(self, ref: str, force: bool = False) -> None:
        self.calls.append("push")
        if self.push_error is not None:
            raise self.push_error
        local = self.refs[f"refs/heads/{ref}"]
        upstream = self.remote.branches.get(ref)
        if upstream and not force and not self.is_ancestor(upstream, local):
            raise PushRejectedError(f"Push rejected: {ref} is not a fast-forward")
        self.remote.objects.update(self.objects)
        self.remote.branches[ref] = local

    def get_remote_branches(self) -> list[str]:
        self.calls.append("ls-remote")
        return sorted(self.remote.branches)

    def resolve_ref(self, ref: str) -> str:
        try:
            return self.refs[ref]
        except KeyError:
            raise RefResolutionError(f"Could not resolve ref {ref}", ref=ref) from None

    def write_ref(self, ref: str, oid: str) -> None:
        self.refs[ref] = oid

    def write_symbolic_ref(self, ref: str, target: str) -> None:
        self.symrefs[ref] = target

    def delete_ref(self, ref: str) -> None:
        self.refs.pop(ref, None)

    def list_branches(self, remote: str | None = None) -> list[str]:
        base = f"refs/remotes/{remote}/" if remote else "refs/heads/"
        return sorted(r[len(base):] for r in self.refs if r.startswith(base))

    def current_branch(self) -> str | None:
        target = self.symrefs.get("HEAD", "")
        return target.removeprefix("refs/heads/") or None

    def set_branch_tracking(self, branch: str) -> None:
        self.tracking[branch] = f"refs/heads/{branch}"

    def reset_index(self) -> None:
        self.resets += 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

INITIAL_FILES = {
    "apps/.percyrc": '{"variablePrefix": "_{"}',
    "apps/shop/.percyrc": '{"variableSuffix": "}_"}',
    "apps/shop/a.yaml": "default:\n  timeout: 10\n  retries: 3\n",
    "apps/shop/b.yaml": "default:\n  host: shop.local\n",
    "apps/billing/c.yml": "default:\n  currency: EUR\n",
    "README.md": "# config\n",
}


@pytest.fixture
def engine_config(tmp_path):
    """Engine configuration rooted in a temporary directory."""
    return EngineConfig(
        repos_folder=tmp_path / "repos",
        drafts_folder=tmp_path / "drafts",
        meta_folder=tmp_path / "meta",
        locked_branches=["locked"],
    )


@pytest.fixture
def credentials():
    return Credentials(
        repository_url="https://git.example.com/team/config.git",
        username="alice",
        password="secret",
    )


@pytest.fixture
def remote():
    """Upstream repository with an initial commit on master."""
    fake = FakeRemote()
    fake.commit("master", INITIAL_FILES, "initial")
    return fake


@pytest.fixture
def gateway(remote):
    return FakeGateway(remote)


@pytest.fixture
async def coordinator(engine_config, credentials, gateway):
    """Coordinator that has already accessed the fake repository."""
    from draftsync.sync.coordinator import SyncCoordinator

    coord = SyncCoordinator(engine_config, credentials, gateway=gateway)
    await coord.access_repo()
    return coord
