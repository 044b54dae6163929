"""Typed failures raised by the allocation core.

Business errors derive from :class:`AllocationError` and are always
recoverable by the caller. Infrastructure faults derive from
:class:`InfrastructureError` and should be retried with backoff.
"""

from __future__ import annotations


class AllocationError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidInput(AllocationError):
    status_code = 400


class NotFound(AllocationError):
    status_code = 404


class DuplicateEntry(AllocationError):
    status_code = 409


class NotEligible(AllocationError):
    status_code = 409


class InvalidState(AllocationError):
    status_code = 409


class AlreadyPending(AllocationError):
    status_code = 409


class NoCandidate(AllocationError):
    status_code = 404


class InfrastructureError(Exception):
    status_code = 503


class RegistryUnavailable(InfrastructureError):
    pass


class GatewayUnavailable(InfrastructureError):
    pass
