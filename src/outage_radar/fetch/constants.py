"""HTTP constants for the fetch layer."""

# A response is "ok" when its final status falls in [200, 400)
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 400
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_METHOD_NOT_ALLOWED = 405
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_REDIRECTS = 3
DEFAULT_USER_AGENT = "OutageRadar/0.1 (+status monitor)"
DEFAULT_ACCEPT = "application/json, application/xml, text/xml;q=0.9, */*;q=0.8"

DEFAULT_MAX_RESPONSE_SIZE_BYTES = 5 * 1024 * 1024  # 5 MB
DEFAULT_CHUNK_SIZE = 8192

# Binding the fallback socket to the IPv4 wildcard forces an A-record connection
IPV4_LOCAL_ADDRESS = "0.0.0.0"  # noqa: S104

TRANSPORT_PRIMARY = "primary"
TRANSPORT_FALLBACK = "fallback"
