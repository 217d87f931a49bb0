"""Process exit codes of the doccrawl commands.

Each DocCrawlError subclass carries one of these codes, so a script
driving ``doccrawl tasks run`` or ``doccrawl queue`` can tell a bad
config file from a locked catalog or an unreachable update feed.
"""


class ExitCode:
    """Exit codes, grouped by the failing collaborator.

    0 and 1 keep their Unix meaning and 130 is the shell's code for SIGINT.
    The codes in between map one to one onto the exception classes:

    - 2: ConfigurationError, e.g. a bad interval or malformed credentials
    - 3: CatalogError, the package database could not be read or written
    - 4: FetchError, the document service failed a crawl
    - 5: FeedError, the GitHub update feed was unreachable or malformed
    - 6: ScoringError, a repository lookup for suppression failed
    - 7: ValidationError, a command-line value was rejected
    - 8: NotFoundError, an unknown task, package or config section
    """

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIGURATION_ERROR = 2
    CATALOG_ERROR = 3
    FETCH_ERROR = 4
    NETWORK_ERROR = 5
    SCORING_ERROR = 6
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8

    CANCELLED = 130

    @classmethod
    def get_name(cls, code: int) -> str:
        """Constant name for a code, e.g. ``"CATALOG_ERROR"`` for 3."""
        for name, value in vars(cls).items():
            if name.isupper() and value == code:
                return name
        return f"UNKNOWN({code})"

    @classmethod
    def get_description(cls, code: int) -> str:
        return _DESCRIPTIONS.get(code, f"Unknown exit code: {code}")


_DESCRIPTIONS = {
    ExitCode.SUCCESS: "Operation completed successfully",
    ExitCode.GENERAL_ERROR: "An unexpected error occurred",
    ExitCode.CONFIGURATION_ERROR: "Configuration error or invalid config file",
    ExitCode.CATALOG_ERROR: "Package catalog read or write failed",
    ExitCode.FETCH_ERROR: "Document fetch or parse failed",
    ExitCode.NETWORK_ERROR: "Network or update feed error",
    ExitCode.SCORING_ERROR: "Suppression scoring failed",
    ExitCode.INVALID_ARGUMENT: "Invalid command-line argument",
    ExitCode.NOT_FOUND: "Requested resource not found",
    ExitCode.CANCELLED: "Operation cancelled by user",
}
