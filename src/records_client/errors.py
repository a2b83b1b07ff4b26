"""
Custom exceptions for the SQL records client.

Provides structured error handling so the scheduler can tell fatal startup
problems apart from per-tick failures that only skip one query.
"""


class ReceiverError(Exception):
    """Base error for the records receiver."""

    pass


class ConfigurationError(ReceiverError):
    """Missing or contradictory configuration. Fatal at startup."""

    pass


class CredentialError(ReceiverError):
    """Credentials could not be resolved into a connection profile."""

    pass


class SecretUnavailable(CredentialError):
    """Encryption key file is missing or unreadable."""

    pass


class DecryptionFailed(CredentialError):
    """Ciphertext could not be decrypted with the configured key."""

    pass


class TokenIssuanceFailed(CredentialError):
    """Cloud credential service refused or failed to mint a token."""

    pass


class TrustStoreInvalid(CredentialError):
    """Certificate bundle for TLS verification could not be loaded."""

    pass


class SourceConnectionError(ReceiverError):
    """Cannot open or maintain the pooled database connection. Retried next tick."""

    pass


class QueryError(ReceiverError):
    """Query execution, column introspection or row scan failed."""

    def __init__(self, query_id: str, message: str):
        super().__init__(f"[{query_id}] {message}")
        self.query_id = query_id


class EncodingError(ReceiverError):
    """A row could not be serialized into a record."""

    def __init__(self, query_id: str, message: str):
        super().__init__(f"[{query_id}] {message}")
        self.query_id = query_id


class DeliveryError(ReceiverError):
    """Downstream consumer rejected a batch."""

    pass


class TransientDeliveryError(DeliveryError):
    """Temporary rejection (backpressure, admission control) that should be retried."""

    pass


class PermanentDeliveryError(DeliveryError):
    """Rejection that will not succeed on retry."""

    pass


def map_db_error(e: Exception, query_id: str) -> ReceiverError:
    import psycopg
    from psycopg_pool import PoolTimeout

    if isinstance(e, ReceiverError):
        return e
    if isinstance(e, (PoolTimeout, psycopg.OperationalError)):
        return SourceConnectionError(f"[{query_id}] {e}")
    return QueryError(query_id, str(e))
