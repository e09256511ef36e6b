"""HTTPS client for the tessera web service REST API.

The web service usually serves a self-issued certificate, so trust is
established in one of three ways:

- PIN: the server certificate must be byte-identical (DER) to the local
  certificate file. The same file is the only trust anchor of the TLS
  context, with hostname checks disabled.
- VERIFY: standard issuer validation against the system trust store.
- SKIP: no peer checks at all.
"""

from __future__ import annotations

import ssl
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import httpx

from .errors import ServiceOfflineError, TrustError
from .shared.logging import get_logger

if TYPE_CHECKING:
    from .config import ServiceOptions

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class TrustMode(Enum):
    """How the client decides to trust the server certificate."""

    PIN = "pin"
    VERIFY = "verify"
    SKIP = "skip"


def trust_mode_for(options: ServiceOptions) -> TrustMode:
    """Skip-verify wins over pinning; pinning wins over issuer validation."""
    if options.ssl_skip_verify:
        return TrustMode.SKIP
    if options.ssl_pin:
        return TrustMode.PIN
    return TrustMode.VERIFY


def load_certificate_der(cert_path: Path) -> bytes:
    """Read a PEM certificate file and return its DER bytes.

    Raises:
        TrustError: If the file is missing or not a PEM certificate.
    """
    try:
        return ssl.PEM_cert_to_DER_cert(cert_path.read_text())
    except (OSError, ValueError) as e:
        raise TrustError(f"Cannot read pinned certificate {cert_path}: {e}") from e


def fetch_server_certificate_der(host: str, port: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Fetch the certificate a server presents, without validating it."""
    pem = ssl.get_server_certificate((host, port), timeout=timeout)
    return ssl.PEM_cert_to_DER_cert(pem)


def pinned_ssl_context(cert_path: Path) -> ssl.SSLContext:
    """TLS context whose only trust anchor is the pinned certificate."""
    try:
        context = ssl.create_default_context(cafile=str(cert_path))
    except (OSError, ssl.SSLError) as e:
        raise TrustError(f"Cannot load pinned certificate {cert_path}: {e}") from e
    context.check_hostname = False
    # Self-signed leaf certificates fail strict chain checks
    context.verify_flags &= ~ssl.VERIFY_X509_STRICT
    return context


def is_tls_failure(exc: BaseException) -> bool:
    """True if an exception chain contains a TLS handshake/validation error."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLError):
            return True
        text = str(current)
        if "CERTIFICATE_VERIFY_FAILED" in text or "SSL:" in text:
            return True
        current = current.__cause__ or current.__context__
    return False


class TesseraClient:
    """Synchronous HTTPS client for the tessera REST API.

    Usage:
        with TesseraClient.from_options(options) as client:
            response = client.request("GET", "/api/v1/tessera/version")
    """

    def __init__(
        self,
        base_url: str,
        trust_mode: TrustMode = TrustMode.PIN,
        cert_path: Path | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Server URL (e.g., https://localhost:7443)
            trust_mode: Certificate trust policy
            cert_path: Local certificate (required for PIN)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if trust_mode == TrustMode.PIN and cert_path is None:
            raise ValueError("PIN trust mode requires a certificate path")

        self.base_url = base_url.rstrip("/")
        self.trust_mode = trust_mode
        self.cert_path = cert_path
        self.timeout = timeout
        self._pin_verified = False

        parsed = urlparse(self.base_url)
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or 443

        verify: ssl.SSLContext | bool = trust_mode != TrustMode.SKIP
        if trust_mode == TrustMode.PIN and transport is None:
            verify = pinned_ssl_context(cert_path)

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            verify=verify,
            transport=transport,
        )

    @classmethod
    def from_options(
        cls, options: ServiceOptions, transport: httpx.BaseTransport | None = None
    ) -> TesseraClient:
        return cls(
            options.service_url,
            trust_mode=trust_mode_for(options),
            cert_path=options.ssl_cert,
            transport=transport,
        )

    def __enter__(self) -> TesseraClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def verify_pin(self) -> None:
        """Compare the server certificate with the pinned one.

        Raises:
            ServiceOfflineError: If nothing is listening yet.
            TrustError: If the certificates differ or the handshake fails.
        """
        expected = load_certificate_der(self.cert_path)
        try:
            presented = fetch_server_certificate_der(self.host, self.port, self.timeout)
        except (ConnectionRefusedError, TimeoutError, ssl.SSLEOFError) as e:
            raise ServiceOfflineError(f"Cannot connect to {self.base_url}: {e}") from e
        except ssl.SSLError as e:
            raise TrustError(f"TLS handshake with {self.base_url} failed: {e}") from e
        except OSError as e:
            raise ServiceOfflineError(f"Cannot connect to {self.base_url}: {e}") from e

        if presented != expected:
            raise TrustError(
                f"Server at {self.base_url} presented a certificate that does not "
                f"match the pinned certificate {self.cert_path}"
            )
        self._pin_verified = True
        logger.debug("certificate_pin_verified", url=self.base_url)

    def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an HTTPS request.

        Raises:
            ServiceOfflineError: Connection refused or timed out.
            TrustError: Certificate pin mismatch or TLS validation failure.
        """
        if self.trust_mode == TrustMode.PIN and not self._pin_verified:
            self.verify_pin()

        try:
            return self._client.request(method, path, json=json, headers=headers)
        except httpx.ConnectError as e:
            if is_tls_failure(e):
                raise TrustError(f"TLS validation of {self.base_url} failed: {e}") from e
            raise ServiceOfflineError(f"Cannot connect to {self.base_url}: {e}") from e
        except httpx.TimeoutException as e:
            raise ServiceOfflineError(f"Request to {self.base_url} timed out") from e

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json: dict[str, Any] | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, json=json, **kwargs)
