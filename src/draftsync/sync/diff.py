"""Three-way classification of configuration file sets.

File sets are ``{"app/file": ConfigFile}`` maps as produced by
``listing.flat_files()``.  Files are compared by blob oid only; content is
never loaded here.
"""

from __future__ import annotations

from draftsync.sync.models import ConfigFile, ConflictFile, DiffResult

FileMap = dict[str, ConfigFile]


def diff_branch_files(
    left: FileMap, right: FileMap
) -> tuple[list[ConfigFile], list[ConfigFile], list[tuple[ConfigFile, ConfigFile]]]:
    """Compare two file sets by key and oid.

    Returns:
        ``(only_in_left, only_in_right, modified)`` where *modified* holds
        ``(left_file, right_file)`` pairs whose oids differ.
    """
    only_left = [f for key, f in left.items() if key not in right]
    only_right = [f for key, f in right.items() if key not in left]
    modified = [
        (f, right[key])
        for key, f in left.items()
        if key in right and f.oid != right[key].oid
    ]
    return only_left, only_right, modified


def three_way_diff(
    src_files: FileMap,
    target_files: FileMap,
    base_files: FileMap | None = None,
    merge_base: str | None = None,
    src_commit: str | None = None,
) -> DiffResult:
    """Classify source-side changes for merging into the target.

    With *base_files* available the source is diffed against the merge
    base and each change is checked against the target:

    * created or modified in source, absent in target -> ``to_save``;
    * same oid in target -> unchanged;
    * modified in source while target still equals the base -> ``to_save``;
    * otherwise a different target oid -> ``conflict``;
    * deleted in source, still present in target -> ``to_delete``.

    Without a base ("unrelated histories", common under shallow clones) a
    conservative approximation is used: files only in source are saved and
    every file present on both sides with differing oids is a conflict,
    even if only one side actually changed it.  Callers should expect more
    conflicts in that case than a true three-way merge would report.

    When *merge_base* equals *src_commit* the source has nothing new and
    the result is empty.
    """
    if merge_base is not None and merge_base == src_commit:
        return DiffResult()

    to_save: list[ConfigFile] = []
    to_delete: list[ConfigFile] = []
    conflict: list[ConflictFile] = []

    if base_files is None:
        only_src, _, modified = diff_branch_files(src_files, target_files)
        to_save.extend(only_src)
        conflict.extend(
            ConflictFile(draft=src, upstream=target) for src, target in modified
        )
        return DiffResult(to_save=to_save, to_delete=to_delete, conflict=conflict)

    created, deleted, modified = diff_branch_files(src_files, base_files)

    for src in created:
        target = target_files.get(src.key)
        if target is None:
            to_save.append(src)
        elif src.oid != target.oid:
            conflict.append(ConflictFile(draft=src, upstream=target))

    for base in deleted:
        target = target_files.get(base.key)
        if target is not None:
            to_delete.append(target)

    for src, base in modified:
        target = target_files.get(base.key)
        if target is None or base.oid == target.oid:
            to_save.append(src)
        elif src.oid != target.oid:
            conflict.append(ConflictFile(draft=src, upstream=target))

    return DiffResult(to_save=to_save, to_delete=to_delete, conflict=conflict)
