"""Error taxonomy for the sync engine.

Every failure the engine surfaces to its caller derives from ``SyncError``.
Exceptions raised by dulwich or the HTTP transport are translated at the
gateway boundary by ``git_errors()``; anything it does not recognise
propagates unchanged and is wrapped by the coordinator.

Categories:

- ``NetworkError`` -- transport failure during clone/fetch/push.  No local
  state was changed.
- ``PushRejectedError`` -- the remote refused the push (non fast-forward or
  a rejected ref update).  Local refs have already been rolled back.
- ``AuthError`` -- credentials rejected by the remote.
- ``RefResolutionError`` -- an expected ref is missing.  ``branch_deleted``
  tells the caller to force a branch switch.
- ``ObjectNotFoundError`` -- an object or tree path is absent from the local
  object store (usually the shallow clone boundary).
- ``ConflictError`` -- optimistic-concurrency violation carrying the
  conflicting files.  Recoverable by resubmitting with a resolution.
- ``MetadataCorruptionError`` -- local metadata unreadable or from another
  schema version.  Recovered by deletion and re-clone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from dulwich import porcelain
from dulwich.client import HTTPProxyUnauthorized, HTTPUnauthorized
from dulwich.errors import (
    GitProtocolError,
    HangupException,
    NotGitRepository,
    SendPackError,
)
from urllib3.exceptions import HTTPError as Urllib3HTTPError

if TYPE_CHECKING:
    from draftsync.sync.models import ConflictFile

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base class for all engine failures."""


class NetworkError(SyncError):
    """Transport failure while talking to the remote."""


class PushRejectedError(NetworkError):
    """The remote refused the pushed ref update."""


class AuthError(SyncError):
    """Credentials were rejected by the remote."""


class RefResolutionError(SyncError):
    """A requested ref does not exist.

    Args:
        message: Human-readable description.
        ref: The ref that failed to resolve.
        branch_deleted: ``True`` when the branch was deleted upstream.
    """

    def __init__(
        self,
        message: str,
        ref: str | None = None,
        branch_deleted: bool = False,
    ) -> None:
        super().__init__(message)
        self.ref = ref
        self.branch_deleted = branch_deleted


class ObjectNotFoundError(SyncError):
    """An object id or tree path is not present in the object store."""


class MetadataCorruptionError(SyncError):
    """Repository metadata is unreadable or has a stale schema version."""


class FileNotFoundInRepoError(SyncError):
    """Neither a draft nor an upstream version of a file exists."""


class BranchExistsError(SyncError):
    """A branch with the requested name already exists on the remote."""


class ConflictError(SyncError):
    """Files changed upstream since the user's drafts were forked.

    Attributes:
        conflicts: One ``ConflictFile`` per conflicting path, each carrying
            the draft and the freshly fetched upstream content.
    """

    def __init__(self, conflicts: list[ConflictFile]) -> None:
        names = "\n".join(f"• {c.key}" for c in conflicts)
        super().__init__(
            "The following file(s) are already changed in the "
            f"repository:\n{names}"
        )
        self.conflicts = conflicts


# ---------------------------------------------------------------------------
# Translation of dulwich / transport errors
# ---------------------------------------------------------------------------


def translate_git_error(
    error: Exception, operation: str
) -> SyncError | None:
    """Map a dulwich or transport exception onto the engine taxonomy.

    Args:
        error: The exception raised by dulwich or urllib3.
        operation: Name of the gateway operation (``clone``, ``fetch``,
            ``push``, ``ls-remote``), used in messages.

    Returns:
        The translated ``SyncError``, or ``None`` when the exception is not
        a recognised transport failure.
    """
    match error:
        case HTTPUnauthorized() | HTTPProxyUnauthorized():
            return AuthError("Invalid username or password")
        case GitProtocolError() if "403" in str(error):
            return AuthError("Git authorization forbidden")
        case NotGitRepository():
            return NetworkError("Repository not found")
        case porcelain.DivergedBranches():
            return PushRejectedError(
                "Remote branch has diverged; fetch and retry"
            )
        case SendPackError() | porcelain.Error() if operation == "push":
            return PushRejectedError(f"Push rejected: {error}")
        case HangupException() | GitProtocolError():
            return NetworkError(f"Git {operation} failed: {error}")
        case Urllib3HTTPError() | OSError():
            return NetworkError(f"Git {operation} failed: {error}")
        case _:
            return None


@contextmanager
def git_errors(operation: str) -> Iterator[None]:
    """Translate transport exceptions raised inside the block.

    Engine errors pass through untouched; unrecognised exceptions propagate
    unchanged.
    """
    try:
        yield
    except SyncError:
        raise
    except Exception as exc:
        translated = translate_git_error(exc, operation)
        if translated is None:
            raise
        logger.debug("git %s failed: %r", operation, exc)
        raise translated from exc
