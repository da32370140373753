"""Error taxonomy for GitHub API failures.

Every failure that leaves the API layer is a :class:`GitHubApiError` with a
machine-readable :class:`ErrorCategory`.  Classification is pure; applying
the resulting back-off to the throttle queue is a separate step
(:func:`apply_backoff`) so the classifier can be tested on its own.
"""

import enum
import logging
import time
from typing import Optional

log = logging.getLogger("gfi.errors")

# Used when GitHub signals a secondary limit without sending Retry-After
DEFAULT_SECONDARY_BACKOFF = 60


class ErrorCategory(str, enum.Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT_PRIMARY = "rate_limit_primary"
    RATE_LIMIT_SECONDARY = "rate_limit_secondary"
    NOT_FOUND = "not_found"
    BAD_QUERY = "bad_query"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


_RATE_LIMIT_CATEGORIES = frozenset({
    ErrorCategory.RATE_LIMIT_PRIMARY,
    ErrorCategory.RATE_LIMIT_SECONDARY,
})


class GitHubApiError(Exception):
    """A classified GitHub API failure.

    Attributes:
        category: One of :class:`ErrorCategory`.
        message: Remediation hint suitable for showing to a user.
        status: HTTP status code (0 when no response was received).
        technical_message: Low-level detail for logs.
        rate_limit_remaining: ``X-RateLimit-Remaining`` at failure time.
        rate_limit_reset: ``X-RateLimit-Reset`` epoch seconds.
        documentation_url: ``documentation_url`` from the response body.
        retry_after: Parsed ``Retry-After`` seconds, if sent.
        resume_at: Epoch seconds after which a retry makes sense.  Always
            set for rate-limit categories.
    """

    def __init__(self, category: ErrorCategory, message: str, status: int = 0,
                 technical_message: str = "", rate_limit_remaining: Optional[int] = None,
                 rate_limit_reset: Optional[int] = None, documentation_url: str = "",
                 retry_after: Optional[int] = None, resume_at: Optional[float] = None,
                 response=None):
        super().__init__(message)
        self.category = ErrorCategory(category)
        self.message = message
        self.status = status
        self.technical_message = technical_message or message
        self.rate_limit_remaining = rate_limit_remaining
        self.rate_limit_reset = rate_limit_reset
        self.documentation_url = documentation_url
        self.retry_after = retry_after
        self.resume_at = resume_at
        self.response = response

    @property
    def is_rate_limit(self) -> bool:
        return self.category in _RATE_LIMIT_CATEGORIES

    def __repr__(self) -> str:
        return (f"GitHubApiError({self.category.value}, status={self.status}, "
                f"{self.technical_message!r})")


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------
def _int_header(headers, name: str) -> Optional[int]:
    if not headers:
        return None
    value = headers.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def rate_limit_info(headers) -> tuple[Optional[int], Optional[int]]:
    """Return ``(remaining, reset_epoch)`` from ``X-RateLimit-*`` headers."""
    return (_int_header(headers, "X-RateLimit-Remaining"),
            _int_header(headers, "X-RateLimit-Reset"))


def retry_after_seconds(headers) -> Optional[int]:
    """Parse ``Retry-After`` as whole seconds; ``None`` if absent or invalid."""
    seconds = _int_header(headers, "Retry-After")
    if seconds is None or seconds <= 0:
        return None
    return seconds


def _body_message(body) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or "")
    if isinstance(body, str):
        return body
    return ""


def _body_doc_url(body) -> str:
    if isinstance(body, dict):
        return str(body.get("documentation_url") or "")
    return ""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
def classify_transport_failure(exc: BaseException) -> GitHubApiError:
    """No response at all (DNS, refused connection, timeout...)."""
    return GitHubApiError(
        ErrorCategory.NETWORK,
        "Network error: unable to reach the GitHub API. "
        "Please check your internet connection.",
        status=0,
        technical_message=f"{type(exc).__name__}: {exc}",
    )


def _resume_at(category, retry_after, reset, now) -> Optional[float]:
    if category not in _RATE_LIMIT_CATEGORIES:
        return None
    if retry_after:
        return now + retry_after
    if category is ErrorCategory.RATE_LIMIT_PRIMARY and reset:
        return float(reset)
    return now + DEFAULT_SECONDARY_BACKOFF


def classify_response(status: int, body, headers, now: Optional[float] = None) -> GitHubApiError:
    """Turn a non-successful HTTP response into a :class:`GitHubApiError`.

    Args:
        status: HTTP status code.
        body: Parsed JSON body, raw text when parsing failed, or ``None``.
        headers: Response header mapping (case-insensitive lookups expected).
        now: Current epoch seconds (defaults to ``time.time()``).
    """
    now = time.time() if now is None else now
    message = _body_message(body)
    message_lower = message.lower()
    doc_url = _body_doc_url(body)
    remaining, reset = rate_limit_info(headers)
    retry_after = retry_after_seconds(headers)

    if status == 401:
        category = ErrorCategory.AUTHENTICATION
        technical = "Authentication failed: invalid or expired GitHub token."
        user_msg = ("Your GitHub token is invalid or has expired. "
                    "Create a new token at https://github.com/settings/tokens "
                    "and update it in Settings.")

    elif status == 403:
        if "secondary rate limit" in message_lower or "secondary-rate-limits" in doc_url:
            category = ErrorCategory.RATE_LIMIT_SECONDARY
            technical = "Secondary rate limit exceeded."
            user_msg = ("You're making requests too quickly. Requests will slow down "
                        "automatically; please wait 2-5 minutes before trying again.")
        elif remaining == 0 or "rate limit" in message_lower:
            category = ErrorCategory.RATE_LIMIT_PRIMARY
            reset_text = (time.strftime("%H:%M:%S", time.localtime(reset))
                          if reset else "soon")
            technical = f"Rate limit exceeded. Resets at {reset_text}."
            user_msg = (f"API rate limit exceeded (resets at {reset_text}). "
                        "Add a GitHub token for 5,000 requests/hour.")
        elif "abuse" in message_lower:
            category = ErrorCategory.RATE_LIMIT_SECONDARY
            technical = "GitHub abuse detection triggered."
            user_msg = "Too many requests detected. Please wait a few minutes before trying again."
        else:
            category = ErrorCategory.UNKNOWN
            technical = message or "Access forbidden."
            user_msg = ("Access denied by the GitHub API. This may be caused by token "
                        "permissions or repository access restrictions.")

    elif status == 404:
        category = ErrorCategory.NOT_FOUND
        technical = "Repository or resource not found."
        user_msg = ("The requested repository or resource could not be found. "
                    "Please check the repository name.")

    elif status == 422:
        category = ErrorCategory.BAD_QUERY
        technical = message or "Invalid request parameters."
        user_msg = f"Invalid search query: {message or 'please check your filters and try again.'}"

    elif status == 429:
        category = ErrorCategory.RATE_LIMIT_SECONDARY
        technical = message or "Too many requests."
        user_msg = ("You're making requests too quickly. Requests will slow down "
                    "automatically; please wait before trying again.")

    elif status in (502, 503, 504):
        category = ErrorCategory.SERVICE_UNAVAILABLE
        technical = f"GitHub service unavailable ({status})."
        user_msg = "GitHub is temporarily unavailable. Please try again in a few moments."

    else:
        category = ErrorCategory.UNKNOWN
        technical = message or f"GitHub API error: {status}"
        user_msg = (f"An error occurred while fetching issues ({status}). "
                    f"{message or 'Please try again.'}")

    return GitHubApiError(
        category, user_msg,
        status=status,
        technical_message=technical,
        rate_limit_remaining=remaining,
        rate_limit_reset=reset,
        documentation_url=doc_url,
        retry_after=retry_after,
        resume_at=_resume_at(category, retry_after, reset, now),
        response=body,
    )


def classify_graphql_errors(errors: list, headers=None, now: Optional[float] = None) -> GitHubApiError:
    """Classify the ``errors`` array of an HTTP 200 GraphQL response."""
    now = time.time() if now is None else now
    first = (errors[0] if errors else None) or {}
    message = str(first.get("message") or "")
    remaining, reset = rate_limit_info(headers)
    retry_after = retry_after_seconds(headers)

    if first.get("type") == "RATE_LIMITED" or "rate limit" in message.lower():
        category = ErrorCategory.RATE_LIMIT_SECONDARY
        user_msg = "API rate limit exceeded. Requests will slow down automatically."
    else:
        category = ErrorCategory.BAD_QUERY
        user_msg = message or "GraphQL query error."

    return GitHubApiError(
        category, user_msg,
        status=200,
        technical_message=message or "GraphQL error",
        rate_limit_remaining=remaining,
        rate_limit_reset=reset,
        retry_after=retry_after,
        resume_at=_resume_at(category, retry_after, reset, now),
        response={"errors": errors},
    )


# ---------------------------------------------------------------------------
# Back-off
# ---------------------------------------------------------------------------
def apply_backoff(throttle, error: Optional[GitHubApiError] = None, headers=None,
                  default_seconds: float = DEFAULT_SECONDARY_BACKOFF) -> None:
    """Feed throttling signals into the shared queue deadline.

    ``Retry-After`` (from *headers* or the error) always defers the queue;
    a secondary limit without ``Retry-After`` only sets the default back-off
    when no deadline is active.
    """
    seconds = retry_after_seconds(headers)
    if seconds is None and error is not None:
        seconds = error.retry_after
    if seconds:
        log.warning("[限流] Retry-After=%ds，暂停所有请求", seconds)
        throttle.defer_for(seconds)
        return
    if error is not None and error.category is ErrorCategory.RATE_LIMIT_SECONDARY:
        if throttle.ensure_backoff(default_seconds):
            log.warning("[限流] 触发二级速率限制，暂停所有请求 %ds", default_seconds)
