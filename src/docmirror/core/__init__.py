"""Remote client and async plumbing shared by the sync engine and CLI."""

from .async_utils import RequestQueue, run_sync
from .client import AsyncNotionClient, DryRunClient, NotionClient, RemoteClient

__all__ = [
    "AsyncNotionClient",
    "DryRunClient",
    "NotionClient",
    "RemoteClient",
    "RequestQueue",
    "run_sync",
]
