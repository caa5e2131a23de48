"""
Standard exit codes for repocache commands.

Following Unix/POSIX conventions for command-line tools.
"""

# Standard POSIX exit codes
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
API_ERROR = 65           # Upstream API call failed
NETWORK_ERROR = 68       # Network connection failed or timed out
AUTH_ERROR = 69          # Authentication/authorization failed
DATA_ERROR = 70          # Persistence or data format error
RATE_LIMITED = 75        # Upstream asked us to back off (EX_TEMPFAIL)
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for the repocache error taxonomy
EXCEPTION_EXIT_CODES = {
    'RateLimited': RATE_LIMITED,
    'AbuseLimited': RATE_LIMITED,
    'UpstreamTimeout': NETWORK_ERROR,
    'UpstreamUnavailable': NETWORK_ERROR,
    'UpstreamClientError': API_ERROR,
    'PersistenceError': DATA_ERROR,
    'InvalidFilter': USAGE_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    status = getattr(exc, 'status', None)
    if exc.__class__.__name__ == 'UpstreamClientError' and status in (401, 403):
        return AUTH_ERROR
    return EXCEPTION_EXIT_CODES.get(exc.__class__.__name__, GENERAL_ERROR)
