"""Exception hierarchy for docmirror.

Errors fall into two scopes:

* **Run-scoped** -- ``ConfigurationInvalid`` aborts before any file is
  processed.
* **File-scoped** -- everything else is caught at the orchestrator's
  per-file boundary, recorded against the file, and the run continues.
"""

from __future__ import annotations


class DocMirrorError(Exception):
    """Base class for all docmirror errors."""


class ConfigurationInvalid(DocMirrorError, ValueError):
    """Required configuration is missing or malformed."""


class ParseDegradation(DocMirrorError):
    """A Markdown section could not be converted as its detected type."""


class HierarchyStale(DocMirrorError):
    """A cached container page failed its liveness check."""

    def __init__(self, path_key: str, page_id: str) -> None:
        super().__init__(
            f"Container page {page_id} for '{path_key}' is archived or missing"
        )
        self.path_key = path_key
        self.page_id = page_id


class DestinationLost(DocMirrorError):
    """The destination page vanished mid-upload and the retry failed too."""


class RemoteError(DocMirrorError):
    """An error response from the remote page API.

    Attributes:
        code: API error code (e.g. ``object_not_found``), if known.
        status: HTTP status code, if known.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class RemoteNotFound(RemoteError):
    """The referenced page or block does not exist or is archived."""


class RemoteRejected(RemoteError):
    """The remote API rejected the request payload (validation error)."""


class RemoteRateLimited(RemoteError):
    """The remote API asked us to slow down.

    Attributes:
        retry_after: Seconds to wait before retrying, if the server said.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, code=code, status=status)
        self.retry_after = retry_after


class RemoteUnauthorized(RemoteError):
    """The API token is invalid or lacks access to the resource."""
