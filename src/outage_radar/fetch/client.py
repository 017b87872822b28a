"""HTTP client with a single fallback transport and failure isolation."""

import threading
import time
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from io import BytesIO
from urllib.parse import urlparse

import httpx
import structlog

from outage_radar.fetch.constants import (
    DEFAULT_ACCEPT,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    IPV4_LOCAL_ADDRESS,
    TRANSPORT_FALLBACK,
    TRANSPORT_PRIMARY,
)
from outage_radar.fetch.metrics import FetchMetrics
from outage_radar.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchOptions,
    FetchResult,
    ResponseSizeExceededError,
)


logger = structlog.get_logger()

TransportFactory = Callable[[], httpx.BaseTransport]

_TLS_MARKERS = ("ssl", "tls", "certificate", "handshake")


def ipv4_transport() -> httpx.BaseTransport:
    """Build the fallback transport: fresh pool, IPv4 only, HTTP/1.1."""
    return httpx.HTTPTransport(
        local_address=IPV4_LOCAL_ADDRESS,
        http1=True,
        http2=False,
        retries=0,
    )


class HttpFetcher:
    """HTTP client that never raises for network or status failures.

    Each call tries the primary transport and, when that fails with a
    transport error or a status outside [200, 400), makes exactly one
    more attempt through a fresh IPv4-bound transport. With
    ``ipv4_only`` the order is reversed.

    Primary attempts share one connection pool for the fetcher's
    lifetime; httpx fixes the redirect cap per client, so one client is
    kept per distinct ``max_redirects`` over that pool. Call ``close()``
    (or use the fetcher as a context manager) to release it.
    """

    def __init__(  # noqa: PLR0913
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_response_size_bytes: int = DEFAULT_MAX_RESPONSE_SIZE_BYTES,
        transport: httpx.BaseTransport | None = None,
        fallback_transport_factory: TransportFactory = ipv4_transport,
        poll_id: str = "",
    ) -> None:
        """Initialize the HTTP fetcher.

        Args:
            user_agent: User-Agent header sent on every request.
            timeout_seconds: Default per-attempt timeout.
            max_response_size_bytes: Bodies larger than this are rejected.
            transport: Primary transport shared across calls; None builds a default pool.
            fallback_transport_factory: Builds the transport for the second attempt.
            poll_id: Poll cycle identifier for logging.
        """
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds
        self._max_response_size_bytes = max_response_size_bytes
        self._transport = transport or httpx.HTTPTransport(retries=0)
        self._fallback_transport_factory = fallback_transport_factory
        self._primary_clients: dict[int, httpx.Client] = {}
        self._lock = threading.Lock()
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch", poll_id=poll_id)

    def close(self) -> None:
        """Close the shared primary clients and their transport."""
        with self._lock:
            clients = list(self._primary_clients.values())
            self._primary_clients.clear()
        for client in clients:
            client.close()
        self._transport.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, url: str, options: FetchOptions | None = None) -> FetchResult:
        """Fetch a URL, falling back to the secondary transport once.

        Args:
            url: The URL to fetch.
            options: Per-call options; defaults apply when None.

        Returns:
            FetchResult; inspect ``ok`` and ``error`` rather than catching.
        """
        options = options or FetchOptions()
        log = self._log.bind(url=url, domain=urlparse(url).netloc, method=options.method)
        headers = self._build_headers(options.headers)

        order = (
            [TRANSPORT_FALLBACK, TRANSPORT_PRIMARY]
            if options.ipv4_only
            else [TRANSPORT_PRIMARY, TRANSPORT_FALLBACK]
        )

        result = self._execute_single(url, headers, options, order[0])
        if not result.ok:
            log.info(
                "fetch_fallback",
                first_transport=order[0],
                status=result.status,
                error_class=result.error.error_class.value if result.error else None,
            )
            retry = self._execute_single(url, headers, options, order[1])
            self._metrics.record_fallback(recovered=retry.ok)
            # Keep the first HTTP response when the retry never reached the server
            if retry.ok or retry.status or not result.status:
                result = retry

        if not result.ok:
            self._metrics.record_failure(
                result.error.error_class if result.error else FetchErrorClass.UNKNOWN
            )

        log.info(
            "fetch_complete",
            status=result.status,
            ok=result.ok,
            transport=result.transport,
            bytes=len(result.body),
            duration_ms=round(result.elapsed_ms, 2),
            error_class=result.error.error_class.value if result.error else None,
        )
        return result

    def _build_headers(self, overrides: dict[str, str]) -> dict[str, str]:
        """Merge caller overrides over the default request headers."""
        headers: dict[str, str] = {
            "User-Agent": self._user_agent,
            "Accept": DEFAULT_ACCEPT,
            "Cache-Control": "no-cache",
        }
        headers.update(overrides)
        return headers

    def _primary_client(self, max_redirects: int) -> httpx.Client:
        with self._lock:
            client = self._primary_clients.get(max_redirects)
            if client is None:
                client = httpx.Client(
                    timeout=self._timeout_seconds,
                    max_redirects=max_redirects,
                    transport=self._transport,
                )
                self._primary_clients[max_redirects] = client
            return client

    def _client(
        self, options: FetchOptions, transport_name: str
    ) -> AbstractContextManager[httpx.Client]:
        """Shared primary client, or a throwaway client on a fresh fallback transport."""
        if transport_name == TRANSPORT_PRIMARY:
            return nullcontext(self._primary_client(options.max_redirects))
        return httpx.Client(
            timeout=self._timeout_seconds,
            max_redirects=options.max_redirects,
            transport=self._fallback_transport_factory(),
        )

    def _execute_single(
        self,
        url: str,
        headers: dict[str, str],
        options: FetchOptions,
        transport_name: str,
    ) -> FetchResult:
        """Execute a single HTTP request on one transport.

        Args:
            url: URL to fetch.
            headers: Request headers.
            options: Per-call options.
            transport_name: Which transport to use.

        Returns:
            FetchResult from the attempt.
        """
        start_ns = time.perf_counter_ns()

        def elapsed() -> float:
            return (time.perf_counter_ns() - start_ns) / 1_000_000

        def failure(error_class: FetchErrorClass, message: str) -> FetchResult:
            self._metrics.record_attempt(transport_name, 0, elapsed())
            return FetchResult(
                status=0,
                final_url=url,
                error=FetchError(error_class=error_class, message=message),
                transport=transport_name,
                elapsed_ms=elapsed(),
            )

        try:
            with (
                self._client(options, transport_name) as client,
                client.stream(
                    options.method,
                    url,
                    headers=headers,
                    timeout=options.timeout_seconds or self._timeout_seconds,
                    follow_redirects=options.max_redirects > 0,
                ) as response,
            ):
                body = self._read_body_with_limit(response)
                duration_ms = elapsed()
                self._metrics.record_attempt(transport_name, response.status_code, duration_ms)
                return FetchResult(
                    status=response.status_code,
                    final_url=str(response.url),
                    body=body,
                    error=self._classify_http_error(response.status_code),
                    transport=transport_name,
                    elapsed_ms=duration_ms,
                )

        except httpx.TimeoutException as e:
            return failure(FetchErrorClass.NETWORK_TIMEOUT, f"Request timed out: {e}")

        except httpx.TooManyRedirects as e:
            return failure(FetchErrorClass.TOO_MANY_REDIRECTS, f"Too many redirects: {e}")

        except httpx.ConnectError as e:
            text = str(e) or type(e).__name__
            if any(marker in text.lower() for marker in _TLS_MARKERS):
                return failure(FetchErrorClass.SSL_ERROR, f"TLS handshake failed: {text}")
            return failure(FetchErrorClass.CONNECTION_ERROR, f"Connection failed: {text}")

        except ResponseSizeExceededError as e:
            return failure(FetchErrorClass.RESPONSE_SIZE_EXCEEDED, str(e))

        except Exception as e:  # noqa: BLE001
            return failure(FetchErrorClass.UNKNOWN, f"Unexpected error: {e!r}")

    def _read_body_with_limit(self, response: httpx.Response) -> bytes:
        """Read response body with size limit.

        Raises:
            ResponseSizeExceededError: If the body exceeds the limit.
        """
        buffer = BytesIO()
        total_read = 0
        max_size = self._max_response_size_bytes

        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise ResponseSizeExceededError(msg)
            buffer.write(chunk)

        return buffer.getvalue()

    def _classify_http_error(self, status_code: int) -> FetchError | None:
        """Classify an HTTP status code as an error, or None when ok."""
        if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
            return None

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return FetchError(
                error_class=FetchErrorClass.RATE_LIMITED,
                message="Rate limited (429 Too Many Requests)",
                status_code=status_code,
            )

        if HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
            return FetchError(
                error_class=FetchErrorClass.HTTP_4XX,
                message=f"HTTP {status_code} response",
                status_code=status_code,
            )

        if HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            return FetchError(
                error_class=FetchErrorClass.HTTP_5XX,
                message=f"HTTP {status_code} response",
                status_code=status_code,
            )

        return FetchError(
            error_class=FetchErrorClass.UNKNOWN,
            message=f"Unexpected status {status_code}",
            status_code=status_code,
        )
