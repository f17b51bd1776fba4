"""Exception hierarchy for the content sync pipeline.

Per-entity oracle failures never surface as exceptions to pipeline callers;
they are returned as tagged OracleError values (see schemas). The classes
below are the exceptions that are raised:

- OracleUnavailable / MalformedOracleResponse: raised per attempt inside
  OracleClient and retried; converted to OracleError once retries run out.
- StorageUnreachable: Change Log, Status Store or entity store write failed.
  Run-fatal for the orchestrator.
- ChangeNotFound / AlreadyReversed / NotReversible: raised by
  ChangeLog.reverse and visible to the caller.
"""


class ContentSyncError(Exception):
    """Base class for all content sync errors."""


class OracleUnavailable(ContentSyncError):
    """Oracle retry budget exhausted on transient failures."""


class MalformedOracleResponse(ContentSyncError):
    """Oracle payload could not be parsed as JSON."""


class StorageUnreachable(ContentSyncError):
    """A durable store could not be read or written."""


class ChangeLogError(ContentSyncError):
    """Base class for change log reversal failures."""

    def __init__(self, entry_id: str, message: str) -> None:
        super().__init__(f"{message}: {entry_id}")
        self.entry_id = entry_id


class ChangeNotFound(ChangeLogError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(entry_id, "Change not found")


class AlreadyReversed(ChangeLogError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(entry_id, "Change already reversed")


class NotReversible(ChangeLogError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(entry_id, "Change is not reversible")
