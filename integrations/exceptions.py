"""
Square Integration Errors

Connection- and configuration-level errors abort a tenant's sync attempt;
``RecordApplyFailed`` is recovered per record by the caller.
"""


class SquareIntegrationError(Exception):
    """Base class for Square sync failures."""

    code = "square_error"

    def __init__(self, message: str, *, tenant_id=None):
        super().__init__(message)
        self.tenant_id = tenant_id


class ConnectionNotConfigured(SquareIntegrationError):
    """No usable credentials are stored for the tenant."""

    code = "connection_not_configured"


class RefreshFailed(SquareIntegrationError):
    """Square rejected the refresh-token grant. The tenant must reconnect."""

    code = "refresh_failed"


class LocationNotConfigured(SquareIntegrationError):
    """Sync attempted before a business location was selected."""

    code = "location_not_configured"


class OAuthExchangeFailed(SquareIntegrationError):
    """Authorization-code grant rejected, incomplete, or state mismatch."""

    code = "oauth_exchange_failed"


class SignatureInvalid(SquareIntegrationError):
    """Webhook signature did not verify."""

    code = "signature_invalid"


class WebhookPayloadInvalid(SquareIntegrationError):
    """Webhook body is not a parseable event envelope."""

    code = "webhook_payload_invalid"


class RecordApplyFailed(SquareIntegrationError):
    """A single timecard or break could not be written."""

    code = "record_apply_failed"

    def __init__(self, message: str, *, external_id: str, tenant_id=None):
        super().__init__(message, tenant_id=tenant_id)
        self.external_id = external_id


class MappingNotFound(SquareIntegrationError):
    """Employee mapping does not exist for the tenant."""

    code = "mapping_not_found"


class MappingValidationError(SquareIntegrationError):
    """Confirmation must link exactly one internal employee."""

    code = "mapping_invalid"


# Failures that leave the tenant needing to reconnect
RECONNECT_ERRORS = (ConnectionNotConfigured, RefreshFailed)
