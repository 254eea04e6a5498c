"""
Tax-authority gateway port.

``TaxReturnService.file`` hands a finalized return payload to any object
satisfying ``TaxAuthorityGateway``.  The HTTP implementation lives in
``taxbook_services.gateways``; the accept/reject decision arrives later
through ``TaxReturnService.submit_result``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TaxAuthorityGateway(Protocol):
    """Synchronous submission; returns the authority's submission id."""

    def submit_return(self, payload: dict[str, Any]) -> str:
        """
        Raises:
            ExternalServiceError: authority unreachable or refused the call.
            ExternalServiceTimeoutError: no answer within the timeout.
        """
        ...
