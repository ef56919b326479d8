"""Custom exceptions for the SolrCloud operator."""


class SolrOperatorError(Exception):
    """Base exception for all SolrCloud operator errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigurationError(SolrOperatorError, ValueError):
    """Exception raised when a SolrCloud resource is configured incorrectly."""

    pass


class InvalidSecretError(ConfigurationError):
    """Exception raised for a user-provided secret of the wrong shape."""

    pass


class UnknownRepositoryError(ConfigurationError):
    """Exception raised for a backup repository with no recognizable type."""

    pass


class ZookeeperNotReadyError(SolrOperatorError):
    """Exception raised when the ZooKeeper connection is not known yet."""

    pass
