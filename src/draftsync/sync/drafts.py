"""Per-user draft storage.

Drafts live at ``{drafts_folder}/{repo_folder}/{branch}/{apps_folder}/{app}/{file}``.
The presence of a draft file means "modified"; removing it discards the
local edit.  Listing only stats files and never reads their content.
"""

from __future__ import annotations

import logging
import posixpath
import shutil
from pathlib import Path

from draftsync.file_handler import (
    read_file_with_encoding,
    validate_path_component,
    write_file,
)
from draftsync.sync.listing import is_yaml_file
from draftsync.sync.models import ConfigFile

logger = logging.getLogger(__name__)


class PathFinder:
    """Repository and draft locations of one file on one branch.

    Attributes:
        repo_file_path: POSIX path of the file inside the repository tree.
        draft_app_dir: Directory holding the application's drafts.
        draft_full_file_path: Location of the draft file.
    """

    def __init__(
        self,
        file: ConfigFile,
        branch: str,
        apps_folder: str,
        drafts_root: Path,
    ) -> None:
        validate_path_component(file.file_name, "file name")
        if file.application_name:
            validate_path_component(file.application_name, "application name")
        self.file = file
        self.repo_file_path = posixpath.join(
            apps_folder, file.application_name, file.file_name
        )
        self.draft_app_dir = (
            drafts_root / branch / apps_folder / file.application_name
        )
        self.draft_full_file_path = self.draft_app_dir / file.file_name


class DraftStore:
    """Draft files of one repository folder, partitioned by branch.

    Args:
        root: ``{drafts_folder}/{repo_folder}``.
        apps_folder: Name of the applications folder.
        extensions: Lower-case file extensions treated as YAML.
    """

    def __init__(
        self, root: Path, apps_folder: str, extensions: list[str]
    ) -> None:
        self.root = root
        self.apps_folder = apps_folder
        self.extensions = extensions

    def path_finder(self, file: ConfigFile, branch: str) -> PathFinder:
        return PathFinder(file, branch, self.apps_folder, self.root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def exists(self, file: ConfigFile, branch: str) -> bool:
        return self.path_finder(file, branch).draft_full_file_path.is_file()

    def read(self, file: ConfigFile, branch: str) -> str | None:
        """Return the draft text, or ``None`` if there is no draft."""
        path = self.path_finder(file, branch).draft_full_file_path
        if not path.is_file():
            return None
        content, _ = read_file_with_encoding(path)
        return content

    def write(self, file: ConfigFile, branch: str, content: str) -> int:
        """Write a draft and return its size in bytes."""
        path = self.path_finder(file, branch).draft_full_file_path
        return write_file(path, content)

    def remove(self, file: ConfigFile, branch: str) -> bool:
        """Delete a draft.  Returns ``True`` if one existed."""
        path = self.path_finder(file, branch).draft_full_file_path
        if not path.is_file():
            return False
        path.unlink()
        return True

    def remove_branch(self, branch: str) -> None:
        """Delete every draft of *branch*."""
        branch_dir = self.root / branch
        if branch_dir.exists():
            logger.info("Removing drafts of branch %s", branch)
            shutil.rmtree(branch_dir)

    def list_drafts(self, branch: str) -> tuple[list[ConfigFile], list[str]]:
        """List the drafts of *branch*.

        Returns:
            ``(files, applications)``.  Every draft is reported with
            ``modified=True`` and its size; every application folder is
            reported even if it holds no drafts.
        """
        files: list[ConfigFile] = []
        applications: list[str] = []
        apps_path = self.root / branch / self.apps_folder
        if not apps_path.is_dir():
            return files, applications

        for app_path in sorted(apps_path.iterdir()):
            if not app_path.is_dir():
                continue
            applications.append(app_path.name)
            for file_path in sorted(app_path.iterdir()):
                if not file_path.is_file():
                    continue
                if not is_yaml_file(file_path.name, self.extensions):
                    continue
                files.append(
                    ConfigFile(
                        application_name=app_path.name,
                        file_name=file_path.name,
                        size=file_path.stat().st_size,
                        modified=True,
                    )
                )
        return files, applications
