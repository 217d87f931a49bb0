"""Exceptions raised by doccrawl components.

Every error carries the exit code the CLI reports when the error escapes a
command. Inside the daemon, errors are caught and logged by the task
scheduler and never terminate the process.
"""

from typing import Any, Optional

from doccrawl.cli.exit_codes import ExitCode


class DocCrawlError(Exception):
    """Base exception for doccrawl.
    
    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """
    
    exit_code: int = ExitCode.GENERAL_ERROR
    
    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}
    
    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(DocCrawlError):
    """Invalid configuration, including malformed GitHub credentials."""
    
    exit_code = ExitCode.CONFIGURATION_ERROR


class CatalogError(DocCrawlError):
    """Raised when a catalog read or write fails, or a stored blob is corrupt."""
    
    exit_code = ExitCode.CATALOG_ERROR


class FetchError(DocCrawlError):
    """Raised when a package document cannot be fetched or parsed."""
    
    exit_code = ExitCode.FETCH_ERROR
    
    def __init__(
        self,
        message: str,
        import_path: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if import_path:
            details["import_path"] = import_path
        if status_code is not None:
            details["status"] = status_code
        super().__init__(message, details=details)
        self.import_path = import_path
        self.status_code = status_code


class DocumentNotFound(FetchError):
    """The import path resolved to nothing (deleted or missing repository)."""
    
    exit_code = ExitCode.NOT_FOUND


class NotModified(FetchError):
    """The document is unchanged since the etag we hold."""
    pass


class FeedError(DocCrawlError):
    """Raised when the update feed is unreachable or returns garbage."""
    
    exit_code = ExitCode.NETWORK_ERROR


class ScoringError(DocCrawlError):
    """Raised when a package cannot be scored for suppression."""
    
    exit_code = ExitCode.SCORING_ERROR


class ValidationError(DocCrawlError):
    """Invalid user input on the command line."""
    
    exit_code = ExitCode.INVALID_ARGUMENT


class NotFoundError(DocCrawlError):
    """A requested package or task does not exist."""
    
    exit_code = ExitCode.NOT_FOUND
