"""
Trust-on-first-use checks for server identities
"""
import hmac

from cryptography import x509

from ..errors import RemoteConnectionError, UntrustedEndpoint
from ..utils.logging import log, vlog


class TrustVerifier:
    """
    Decides whether to accept an identity that could not be verified
    independently (self-signed certificate, SSH host key).

    The identity is accepted silently if it equals the site's stored
    ``server_key``; otherwise the operator is asked once and, on acceptance,
    the identity becomes the new ``server_key``.
    """

    def __init__(self, site, prompts):
        self.site = site
        self.prompts = prompts

    def check(self, identity: bytes, detail: str, subject: str = "", issuer: str = ""):
        known = self.site.server_key
        if known and hmac.compare_digest(known, identity):
            vlog(f"[trust] {self.site.endpoint} matches stored key")
            return
        if not self.prompts.prompt_trust(self.site.endpoint, detail, subject, issuer):
            raise UntrustedEndpoint(f"Server identity not trusted (host={self.site.hostname})")
        self.site.server_key = bytes(identity)
        log(f"[trust] accepted new key for {self.site.endpoint}")

    def vet_certificate(self, der: bytes, detail: str):
        """Check a leaf certificate, keyed by its signature bytes."""
        if not der:
            raise UntrustedEndpoint(f"No certificate presented by {self.site.hostname}")
        try:
            cert = x509.load_der_x509_certificate(der)
        except ValueError as exc:
            raise RemoteConnectionError(f"Bad certificate from {self.site.hostname}: {exc}") from exc
        self.check(
            cert.signature,
            f"The security certificate from {self.site.hostname} could not be verified.\n{detail}",
            cert.subject.rfc4514_string(),
            cert.issuer.rfc4514_string(),
        )
