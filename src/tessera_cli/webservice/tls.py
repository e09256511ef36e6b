"""TLS key and certificate material for the web service.

The certificate serves TLS for the daemon and is the pinned trust anchor of
the orchestrator's own HTTPS client.
"""

from __future__ import annotations

import ipaddress
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ..shared.logging import get_logger

if TYPE_CHECKING:
    from ..config import ServiceOptions

logger = get_logger(__name__)

KEY_SIZE = 2048
VALID_DAYS = 3650


def tls_material_present(options: ServiceOptions) -> bool:
    return options.ssl_key.exists() and options.ssl_cert.exists()


def tls_generation_required(options: ServiceOptions) -> bool:
    """Decide whether init should (re)generate TLS material.

    Generate when the key or certificate is missing, or when both paths are
    the built-in defaults and destructive regeneration is requested.
    Operator-supplied material that exists is never overwritten.
    """
    if not tls_material_present(options):
        return True
    return options.uses_default_tls_paths and options.delete_data


def _subject_alt_names(hostname: str) -> list[x509.GeneralName]:
    names: list[x509.GeneralName] = [
        x509.DNSName("localhost"),
        x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
    ]
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        if hostname != "localhost":
            names.append(x509.DNSName(hostname))
    else:
        if str(address) != "127.0.0.1":
            names.append(x509.IPAddress(address))
    return names


def generate_tls_material(key_path: Path, cert_path: Path, hostname: str = "localhost") -> None:
    """Create a private key (mode 600) and a self-signed certificate.

    Args:
        key_path: Where to write the PEM private key.
        cert_path: Where to write the PEM certificate.
        hostname: Extra host name or address the certificate is valid for.
    """
    now = datetime.now(timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=VALID_DAYS))
        .add_extension(x509.SubjectAlternativeName(_subject_alt_names(hostname)), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    cert_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    key_path.touch(mode=0o600, exist_ok=True)
    key_path.chmod(0o600)
    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    cert_path.chmod(0o644)
    logger.info("tls_material_generated", key=str(key_path), cert=str(cert_path))


def remove_tls_material(key_path: Path, cert_path: Path) -> list[Path]:
    """Delete key and certificate if present.

    Returns:
        Paths that were actually removed.
    """
    removed = []
    for path in (key_path, cert_path):
        if path.exists():
            path.unlink()
            removed.append(path)
    if removed:
        logger.info("tls_material_removed", paths=[str(p) for p in removed])
    return removed
