"""
Exception hierarchy for the TaaS explorer toolkit.

Exception Categories:
- RetryableException: Transient failures that may succeed on retry (RPC, network)
- NonRetryableException: Permanent failures that won't benefit from retry (bad data)
- ConfigurationException: Startup/config errors that prevent operation

Concrete exceptions:
- RPCException -> RetryableException (log queries and contract calls)
- APIException -> RetryableException (transient HTTP failures)
- GraphQLException -> APIException (indexer returned errors or no data)
"""


class RetryableException(Exception):
    """
    Base class for exceptions that may succeed on retry.

    Use for transient failures like:
    - RPC timeouts
    - Rate limiting
    - Temporary network issues
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NonRetryableException(Exception):
    """
    Base class for exceptions that won't benefit from retry.

    Use for permanent failures like:
    - Invalid input data
    - Missing required data
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationException(NonRetryableException):
    """
    Exception for configuration/startup errors.

    Use when:
    - TAAS_RPC_URL or TAAS_ATTESTATION_ADDRESS is missing
    - Invalid configuration values
    """

    pass


class RPCException(RetryableException):
    """Exception for chain RPC failures (log queries, contract calls)."""

    pass


class APIException(RetryableException):
    """
    Exception for external API failures.

    Inherits from RetryableException because API failures
    are often transient (rate limits, timeouts).
    """

    pass


class GraphQLException(APIException):
    """
    Exception raised when the GraphQL indexer answers with an ``errors``
    array or without a ``data`` object.
    """

    pass
