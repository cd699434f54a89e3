"""Three-way merge and content comparison utilities for the sync engine.

Uses the ``merge3`` library for three-way merging (the same algorithm used
by Bazaar/Breezy) and PyYAML for semantic comparison of configuration
files.

Key design choices:

* Merge operates on **raw YAML text**; the result is only a suggestion
  attached to a conflict, never committed automatically.
* Conflict markers follow Git convention with custom labels:
  ``<<<<<<< DRAFT``, ``=======``, ``>>>>>>> UPSTREAM``.
* ``contents_equal`` compares parsed documents so that formatting-only
  differences do not count as modifications.
"""

from __future__ import annotations

import yaml
from merge3 import Merge3


def attempt_merge(
    base_content: str,
    draft_content: str,
    upstream_content: str,
) -> tuple[str, bool]:
    """Perform a three-way merge of draft and upstream changes against a base.

    Args:
        base_content: The common ancestor (commit-base blob) content.
        draft_content: The user's draft content.
        upstream_content: The freshly fetched upstream content.

    Returns:
        A tuple of ``(merged_text, has_conflicts)`` where *merged_text* is
        the result of the merge (possibly containing conflict markers) and
        *has_conflicts* is ``True`` if conflict markers are present.
    """
    base_lines = base_content.splitlines(True)
    draft_lines = draft_content.splitlines(True)
    upstream_lines = upstream_content.splitlines(True)

    m3 = Merge3(base_lines, draft_lines, upstream_lines)

    merged_lines = list(
        m3.merge_lines(
            name_a="DRAFT",
            name_b="UPSTREAM",
            start_marker="<<<<<<< DRAFT",
            mid_marker="=======",
            end_marker=">>>>>>> UPSTREAM",
        )
    )

    merged_text = "".join(merged_lines)
    has_conflicts = "<<<<<<< DRAFT" in merged_text

    return merged_text, has_conflicts


def contents_equal(left: str | None, right: str | None) -> bool:
    """Return ``True`` if two YAML texts describe the same document.

    Text that fails to parse on either side is compared verbatim.
    ``None`` only equals ``None``.
    """
    if left is None or right is None:
        return left is right
    try:
        return yaml.safe_load(left) == yaml.safe_load(right)
    except yaml.YAMLError:
        return left == right
