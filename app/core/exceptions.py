"""
Error taxonomy for domain provisioning.

Two families:
  - DomainServiceError: rejected synchronously, mapped to an HTTP status by the
    handlers in app.main. No state is mutated when one is raised.
  - ProviderError: raised by registrar / DNS adapters. ``retryable`` tells the
    orchestrator whether to back off and retry or to fail the order.
"""


class DomainServiceError(Exception):
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(DomainServiceError):
    status_code = 400


class SignatureRejected(DomainServiceError):
    status_code = 400


class Unauthorized(DomainServiceError):
    status_code = 403


class NotFound(DomainServiceError):
    status_code = 404


class Conflict(DomainServiceError):
    status_code = 409


class PreconditionFailed(DomainServiceError):
    status_code = 409


class InvalidTransition(DomainServiceError):
    status_code = 409

    def __init__(self, current, event):
        super().__init__(f"Event {getattr(event, 'value', event)} not allowed from status {getattr(current, 'value', current)}")
        self.current = current
        self.event = event


# ═══════════════════════════════════════════
#  External provider errors
# ═══════════════════════════════════════════

class ProviderError(Exception):
    retryable = False

    def __init__(self, message: str = "", provider: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.provider = provider

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ProviderTransient(ProviderError):
    """Network failure, timeout, 429 or 5xx. Safe to retry."""
    retryable = True


class ProviderPermanent(ProviderError):
    """Malformed request, rejected configuration, etc. Retrying cannot help."""


class NotAvailable(ProviderPermanent):
    """Domain is no longer purchasable."""


class PriceChanged(ProviderPermanent):
    """Current registrar price is outside the quoted band; needs a re-quote."""
