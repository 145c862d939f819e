# src/relstore/errors.py
from datetime import date
from typing import Optional


class StoreError(Exception):
    pass


class NotFound(StoreError):
    pass


class Conflict(StoreError):
    """A unique constraint rejected the write (e.g. email already in use)."""
    pass


class SchemaMismatch(StoreError):
    def __init__(self, module: str, installed: Optional[date], expected: date):
        self.module = module
        self.installed = installed
        self.expected = expected
        super().__init__(
            f"schema for module '{module}' is at {installed or 'nothing'}, "
            f"code expects {expected}; run the migrations"
        )


class MigrationConflict(StoreError):
    pass


class MigrationFailed(StoreError):
    def __init__(self, module: str, last_applied: Optional[date], failed: date):
        self.module = module
        self.last_applied = last_applied
        self.failed = failed
        super().__init__(
            f"migration {failed} of module '{module}' failed; "
            f"last successful version is {last_applied or 'none'}"
        )


class ConnectivityFailure(StoreError):
    pass


class DeadlineExceeded(ConnectivityFailure):
    pass


class DecodeFailure(StoreError):
    pass
