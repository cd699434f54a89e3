"""Tests for sync/push.py — staged commits and transactional push."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from dulwich.repo import Repo

from draftsync.core.errors import NetworkError, PushRejectedError
from draftsync.core.gateway import CommitData, RepoGateway, TreeItem
from draftsync.sync.push import StagedCommit, TransactionalPush
from draftsync.sync.state import RepoStateStore


@pytest.fixture
def repo_gateway(tmp_path: Path, credentials) -> RepoGateway:
    repo_dir = tmp_path / "repo"
    Repo.init(str(repo_dir), mkdir=True).close()
    gw = RepoGateway(repo_dir, credentials)
    yield gw
    gw.close()


# ---------------------------------------------------------------------------
# StagedCommit
# ---------------------------------------------------------------------------


class TestStagedCommit:
    """Tests for StagedCommit on a real object store."""

    def test_initial_commit_builds_nested_trees(self, repo_gateway):
        staged = StagedCommit(repo_gateway, None)
        staged.add("apps/shop/a.yaml", "a: 1\n")
        staged.add("apps/.percyrc", "{}")

        commit = staged.commit("master", "initial", "alice <alice>")

        assert repo_gateway.read_object(commit).data.parents == ()
        assert repo_gateway.list_files(commit) == {
            "apps/shop/a.yaml": repo_gateway.read_object(commit, "apps/shop/a.yaml").oid,
            "apps/.percyrc": repo_gateway.read_object(commit, "apps/.percyrc").oid,
        }
        assert repo_gateway.resolve_ref("refs/heads/master") == commit

    def test_builds_on_base_commit(self, repo_gateway):
        first = StagedCommit(repo_gateway, None)
        first.add("apps/shop/a.yaml", "a: 1\n")
        first.add("apps/shop/b.yaml", "b: 1\n")
        base = first.commit("master", "initial", "alice <alice>")

        staged = StagedCommit(repo_gateway, base)
        assert staged.paths == ["apps/shop/a.yaml", "apps/shop/b.yaml"]
        blob = staged.add("apps/shop/a.yaml", "a: 2\n")
        assert staged.remove("apps/shop/b.yaml") is True
        assert staged.remove("apps/shop/missing.yaml") is False
        commit = staged.commit("master", "update", "alice <alice>")

        obj = repo_gateway.read_object(commit)
        assert obj.data.parents == (base,)
        assert obj.data.message == "update"
        assert repo_gateway.list_files(commit) == {"apps/shop/a.yaml": blob}
        assert repo_gateway.read_object(commit, "apps/shop/a.yaml").data == b"a: 2\n"

    def test_removing_last_file_drops_directory(self, repo_gateway):
        first = StagedCommit(repo_gateway, None)
        first.add("apps/shop/a.yaml", "a\n")
        first.add("README.md", "r\n")
        base = first.commit("master", "initial", "alice <alice>")

        staged = StagedCommit(repo_gateway, base)
        staged.remove("apps/shop/a.yaml")
        commit = staged.commit("master", "delete", "alice <alice>")

        root = repo_gateway.iter_tree(repo_gateway.read_object(commit).data.tree)
        assert [item.path for item in root] == ["README.md"]

    def test_extra_parents(self, repo_gateway):
        a = StagedCommit(repo_gateway, None)
        a.add("x.yaml", "x\n")
        target = a.commit("master", "t", "alice <alice>")
        b = StagedCommit(repo_gateway, None)
        b.add("y.yaml", "y\n")
        source = b.commit("dev", "s", "alice <alice>")

        merge = StagedCommit(repo_gateway, target).commit(
            "master", "merge", "alice <alice>", extra_parents=[source]
        )

        assert repo_gateway.read_object(merge).data.parents == (target, source)

    def test_existing_mode_kept(self, repo_gateway):
        first = StagedCommit(repo_gateway, None)
        first.add("run.sh", "echo\n")
        base = first.commit("master", "initial", "alice <alice>")
        tree = repo_gateway.read_object(base).data.tree
        item = repo_gateway.iter_tree(tree)[0]
        exec_tree = repo_gateway.write_object(
            "tree", [TreeItem(item.path, item.oid, "blob", 0o100755)]
        )
        exec_commit = repo_gateway.write_object(
            "commit", CommitData(exec_tree, (base,), "chmod", "alice <alice>")
        )

        staged = StagedCommit(repo_gateway, exec_commit)
        staged.add("run.sh", "echo hi\n")
        commit = staged.commit("master", "edit", "alice <alice>")

        root = repo_gateway.iter_tree(repo_gateway.read_object(commit).data.tree)
        assert root[0].mode == 0o100755


# ---------------------------------------------------------------------------
# TransactionalPush
# ---------------------------------------------------------------------------


@pytest.fixture
def cloned(gateway, tmp_path):
    gateway.clone("url", "master")
    state = RepoStateStore(gateway, tmp_path / "repo.meta", "1.0")
    return gateway, state, TransactionalPush(gateway, state)


def commit_action(gateway, base, content="a: 2\n"):
    async def action():
        staged = StagedCommit(gateway, base)
        staged.add("apps/shop/a.yaml", content)
        return staged.commit("master", "edit", "alice <alice>")

    return action


class TestTransactionalPush:
    """Tests for TransactionalPush.do_push()."""

    async def test_success_updates_both_refs(self, cloned, remote):
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")

        commit = await pusher.do_push("master", base, commit_action(gateway, base))

        assert remote.branches["master"] == commit
        assert state.get_head_commit("master") == commit
        assert state.get_remote_commit("master") == commit
        assert gateway.resets == 2

    async def test_network_error_rolls_back(self, cloned, remote):
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")
        gateway.push_error = NetworkError("connection reset")

        with pytest.raises(NetworkError):
            await pusher.do_push("master", base, commit_action(gateway, base))

        assert state.get_head_commit("master") == base
        assert state.get_remote_commit("master") == base
        assert remote.branches["master"] == base
        assert gateway.resets == 2

    async def test_rejected_push_rolls_back(self, cloned, remote):
        """The remote moved on; a non-force push is rejected."""
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")
        upstream = remote.commit("master", {"apps/shop/b.yaml": "b: 2\n"})

        with pytest.raises(PushRejectedError):
            await pusher.do_push("master", base, commit_action(gateway, base))

        assert state.get_head_commit("master") == base
        assert remote.branches["master"] == upstream

    async def test_force_push_overwrites(self, cloned, remote):
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")
        remote.commit("master", {"apps/shop/b.yaml": "b: 2\n"})

        commit = await pusher.do_push(
            "master", base, commit_action(gateway, base), force_push=True
        )

        assert remote.branches["master"] == commit

    async def test_failing_action_rolls_back_without_push(self, cloned):
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")

        async def action():
            state.write_head_commit("master", "f" * 40)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await pusher.do_push("master", base, action)

        assert state.get_head_commit("master") == base
        assert "push" not in gateway.calls

    async def test_cancellation_rolls_back(self, cloned):
        gateway, state, pusher = cloned
        base = state.get_remote_commit("master")

        async def action():
            state.write_head_commit("master", "f" * 40)
            raise asyncio.CancelledError

        with pytest.raises(asyncio.CancelledError):
            await pusher.do_push("master", base, action)

        assert state.get_head_commit("master") == base
