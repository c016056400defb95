import asyncio
import socket
import ssl
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext

SECURITY_HEADERS = {
    "strict-transport-security": "Add a Strict-Transport-Security header to enforce HTTPS.",
    "content-security-policy": "Add a Content-Security-Policy header to restrict resource origins.",
    "x-frame-options": "Add X-Frame-Options (or CSP frame-ancestors) to prevent clickjacking.",
    "x-content-type-options": "Set X-Content-Type-Options: nosniff.",
    "referrer-policy": "Add a Referrer-Policy header.",
    "permissions-policy": "Add a Permissions-Policy header to limit browser features.",
}

LEAKAGE_HEADERS = ("server", "x-powered-by", "x-aspnet-version", "x-aspnetmvc-version")

CERT_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"
EXPIRY_WARNING_DAYS = 30


def analyze_headers(url: str, headers: Dict[str, str]) -> Dict[str, Any]:
    headers = {key.lower(): value for key, value in headers.items()}
    present = {name: headers.get(name) for name in SECURITY_HEADERS}
    leakage = {name: headers[name] for name in LEAKAGE_HEADERS if name in headers}
    is_https = urlparse(url).scheme == "https"

    recommendations = [SECURITY_HEADERS[name] for name, value in present.items() if not value]
    if leakage:
        recommendations.append(f"Remove version-revealing headers: {', '.join(sorted(leakage))}.")
    if not is_https:
        recommendations.append("Serve the site over HTTPS.")

    allow_origin = headers.get("access-control-allow-origin")
    cors_status = "wildcard" if allow_origin == "*" else ("restricted" if allow_origin else "not_set")

    score = 100
    score -= 12 * sum(1 for value in present.values() if not value)
    score -= 5 * len(leakage)
    score -= 0 if is_https else 20
    score -= 5 if cors_status == "wildcard" else 0

    return {
        "status": "ok",
        "headers": present,
        "leakageHeaders": leakage,
        "corsStatus": cors_status,
        "isHTTPS": is_https,
        "securityScore": max(0, score),
        "recommendations": recommendations,
    }


def _name_from(rdns) -> Optional[str]:
    for rdn in rdns or ():
        for key, value in rdn:
            if key == "commonName":
                return value
    return None


def fetch_certificate(hostname: str, port: int = 443, timeout: float = 10.0) -> Dict[str, Any]:
    """Blocking TLS handshake; returns the peer certificate summary."""
    context = ssl.create_default_context()
    hostname_valid = True
    try:
        with socket.create_connection((hostname, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=hostname) as tls:
                cert = tls.getpeercert()
                cipher = tls.cipher()
                protocol = tls.version()
    except ssl.SSLCertVerificationError as e:
        hostname_valid = "hostname" not in str(e).lower()
        return {
            "status": "error",
            "isValid": False,
            "message": f"Certificate verification failed: {e.verify_message or e}",
            "hostname": {"requested": hostname, "isValid": hostname_valid},
            "score": 0,
            "recommendations": ["Install a certificate issued by a trusted CA that matches the hostname."],
        }

    now = datetime.utcnow()
    valid_from = datetime.strptime(cert["notBefore"], CERT_DATE_FORMAT)
    valid_until = datetime.strptime(cert["notAfter"], CERT_DATE_FORMAT)
    days_left = (valid_until - now).days
    alt_names = [value for kind, value in cert.get("subjectAltName", ()) if kind == "DNS"]

    recommendations = []
    score = 100
    if days_left < EXPIRY_WARNING_DAYS:
        recommendations.append(f"Certificate expires in {days_left} days; renew it.")
        score -= 30
    if protocol in ("TLSv1", "TLSv1.1"):
        recommendations.append(f"Disable legacy protocol {protocol}.")
        score -= 30

    return {
        "status": "ok",
        "isValid": True,
        "protocol": protocol,
        "cipher": cipher[0] if cipher else None,
        "certificate": {
            "subject": _name_from(cert.get("subject")),
            "issuer": _name_from(cert.get("issuer")),
            "validFrom": valid_from.isoformat(),
            "validUntil": valid_until.isoformat(),
            "daysUntilExpiry": days_left,
            "isExpired": days_left < 0,
            "expiryWarning": days_left < EXPIRY_WARNING_DAYS,
        },
        "hostname": {
            "requested": hostname,
            "commonName": _name_from(cert.get("subject")),
            "subjectAltNames": alt_names,
            "isValid": hostname_valid,
        },
        "score": max(0, score),
        "recommendations": recommendations,
    }


class SecurityCapability(Capability):
    """Response headers plus the TLS certificate; independent of the page load."""

    tag = "security"
    needs_page = False
    timeout = 30.0

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        response = await context.http.get(context.base_url)
        result = analyze_headers(str(response.url), dict(response.headers))

        parsed = urlparse(context.base_url)
        if parsed.scheme == "https":
            try:
                result["ssl"] = await asyncio.to_thread(
                    fetch_certificate, parsed.hostname, parsed.port or 443
                )
            except (OSError, ValueError) as e:
                result["ssl"] = {"status": "error", "isValid": False, "message": str(e), "score": 0}
        else:
            result["ssl"] = {"status": "not_applicable", "isValid": False, "score": 0}

        return result
