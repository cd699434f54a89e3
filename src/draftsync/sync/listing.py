"""Configuration file discovery and reads against git objects.

Repository layout::

    {apps_folder}/
        .percyrc               # shared app config, listed under key ""
        {app}/
            .percyrc           # per-app config
            {file}.yaml

Only the tree objects are traversed; no blob content is loaded while
listing.
"""

from __future__ import annotations

import json
import logging
import posixpath
from typing import TYPE_CHECKING

from draftsync.core.errors import ObjectNotFoundError
from draftsync.file_handler import decode_bytes
from draftsync.sync.models import ConfigFile

if TYPE_CHECKING:
    from draftsync.core.gateway import RepoGateway

logger = logging.getLogger(__name__)


def find_repo_yaml_files(
    gateway: RepoGateway,
    commit: str,
    apps_folder: str,
    extensions: list[str],
    app_config_file: str,
) -> dict[str, list[ConfigFile]]:
    """List configuration files of *commit* grouped by application.

    Returns:
        ``{app: [ConfigFile, ...]}``.  Every application folder gets a
        key even when empty; a shared config file directly under the apps
        folder is listed under the ``""`` key.
    """
    result: dict[str, list[ConfigFile]] = {}
    root_tree = gateway.read_object(commit).data.tree

    apps_tree = next(
        (
            item.oid
            for item in gateway.iter_tree(root_tree)
            if item.path == apps_folder and item.type == "tree"
        ),
        None,
    )
    if apps_tree is None:
        return result

    for entry in gateway.iter_tree(apps_tree):
        if entry.type == "tree":
            result[entry.path] = [
                ConfigFile(
                    application_name=entry.path,
                    file_name=item.path,
                    oid=item.oid,
                )
                for item in gateway.iter_tree(entry.oid)
                if item.type == "blob"
                and _is_config_file(item.path, extensions, app_config_file)
            ]
        elif entry.type == "blob" and entry.path == app_config_file:
            result[""] = [
                ConfigFile(application_name="", file_name=entry.path, oid=entry.oid)
            ]
    return result


def flat_files(files: dict[str, list[ConfigFile]]) -> dict[str, ConfigFile]:
    """Flatten an app-grouped listing into ``{"app/file": ConfigFile}``."""
    return {f.key: f for app_files in files.values() for f in app_files}


def is_yaml_file(file_name: str, extensions: list[str]) -> bool:
    return posixpath.splitext(file_name)[1].lower() in extensions


def read_repo_file(
    gateway: RepoGateway, commit: str, filepath: str
) -> tuple[str | None, str | None]:
    """Read ``filepath`` from *commit*.

    Returns:
        ``(content, oid)``, or ``(None, None)`` if the path does not exist
        in the commit.  Content is ``None`` for non-blob entries.
    """
    try:
        obj = gateway.read_object(commit, filepath)
    except ObjectNotFoundError:
        return None, None
    if obj.type != "blob":
        return None, obj.oid
    return decode_bytes(obj.data)[0], obj.oid


def load_app_config(
    gateway: RepoGateway,
    commit: str,
    apps_folder: str,
    app_config_file: str,
    application_name: str,
) -> dict:
    """Merge the shared and per-application JSON config files.

    Keys from the application's own file win.  Missing files count as
    empty objects.
    """
    merged: dict = {}
    for filepath in (
        posixpath.join(apps_folder, app_config_file),
        posixpath.join(apps_folder, application_name, app_config_file),
    ):
        content, _ = read_repo_file(gateway, commit, filepath)
        if content:
            merged.update(json.loads(content))
    return merged


def _is_config_file(
    file_name: str, extensions: list[str], app_config_file: str
) -> bool:
    return file_name == app_config_file or is_yaml_file(file_name, extensions)
