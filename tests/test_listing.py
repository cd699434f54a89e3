"""Tests for sync/listing.py — configuration discovery in commit trees."""

import pytest

from draftsync.sync.listing import (
    find_repo_yaml_files,
    flat_files,
    is_yaml_file,
    load_app_config,
    read_repo_file,
)

EXTENSIONS = [".yaml", ".yml"]


@pytest.fixture
def tip(remote):
    return remote.branches["master"]


class TestFindRepoYamlFiles:
    """Tests for find_repo_yaml_files()."""

    def test_groups_by_application(self, remote, tip):
        result = find_repo_yaml_files(remote, tip, "apps", EXTENSIONS, ".percyrc")

        assert sorted(result) == ["", "billing", "shop"]
        assert sorted(f.file_name for f in result["shop"]) == [
            ".percyrc",
            "a.yaml",
            "b.yaml",
        ]
        assert [f.file_name for f in result["billing"]] == ["c.yml"]
        assert [f.key for f in result[""]] == ["/.percyrc"]

    def test_oids_match_blobs(self, remote, tip):
        result = flat_files(
            find_repo_yaml_files(remote, tip, "apps", EXTENSIONS, ".percyrc")
        )

        assert result["shop/a.yaml"].oid == remote.read_object(tip, "apps/shop/a.yaml").oid

    def test_files_outside_apps_ignored(self, remote, tip):
        result = flat_files(
            find_repo_yaml_files(remote, tip, "apps", EXTENSIONS, ".percyrc")
        )

        assert not any("README" in key for key in result)

    def test_empty_application_listed(self, remote):
        commit = remote.commit("master", {"apps/empty/notes.txt": "x"})

        result = find_repo_yaml_files(remote, commit, "apps", EXTENSIONS, ".percyrc")

        assert result["empty"] == []

    def test_missing_apps_folder(self, remote, tip):
        assert find_repo_yaml_files(remote, tip, "nothing", EXTENSIONS, ".percyrc") == {}


class TestReadRepoFile:
    """Tests for read_repo_file()."""

    def test_existing_file(self, remote, tip):
        content, oid = read_repo_file(remote, tip, "apps/shop/b.yaml")

        assert content == "default:\n  host: shop.local\n"
        assert oid

    def test_missing_file(self, remote, tip):
        assert read_repo_file(remote, tip, "apps/shop/zzz.yaml") == (None, None)

    def test_non_utf8_blob(self, remote):
        text = (
            "default:\n"
            "  description: Le café de la gare est fermé le dimanche matin.\n"
            "  note: Réservation conseillée pour les réunions à thème.\n"
        )
        tip = remote.commit("master", {"apps/shop/fr.yaml": text.encode("latin-1")})

        content, oid = read_repo_file(remote, tip, "apps/shop/fr.yaml")

        assert "café" in content
        assert oid

    def test_directory(self, remote, tip):
        content, oid = read_repo_file(remote, tip, "apps/shop")

        assert content is None
        assert oid is not None


class TestLoadAppConfig:
    """Tests for load_app_config()."""

    def test_merges_shared_and_app_config(self, remote, tip):
        config = load_app_config(remote, tip, "apps", ".percyrc", "shop")

        assert config == {"variablePrefix": "_{", "variableSuffix": "}_"}

    def test_app_config_wins(self, remote):
        commit = remote.commit(
            "master", {"apps/shop/.percyrc": '{"variablePrefix": "${"}'}
        )

        config = load_app_config(remote, commit, "apps", ".percyrc", "shop")

        assert config["variablePrefix"] == "${"

    def test_missing_files_are_empty(self, remote, tip):
        assert load_app_config(remote, tip, "apps", ".none", "billing") == {}


@pytest.mark.parametrize(
    "name,expected",
    [("a.yaml", True), ("a.YML", True), ("a.json", False), (".percyrc", False)],
)
def test_is_yaml_file(name, expected):
    assert is_yaml_file(name, EXTENSIONS) is expected
