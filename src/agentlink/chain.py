"""Certificate chain building and pinned-authority validation."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature

from agentlink.certificate import Certificate, parse_certificate
from agentlink.exceptions import ChainBuildingError
from agentlink.http_client import create_http_client
from agentlink.models import (
    ChainBuildResult,
    ChainElement,
    ChainStatus,
    ChainStatusCode,
    RevocationFlag,
    RevocationMode,
)
from agentlink.trust_store import OpenMode, RootStore

logger = logging.getLogger(__name__)

_STATUS_INFORMATION = {
    ChainStatusCode.NOT_TIME_VALID: "A required certificate is not within its validity period when verifying against the verification time.",
    ChainStatusCode.NOT_SIGNATURE_VALID: "The signature of the certificate cannot be verified by any issuer candidate with a matching name.",
    ChainStatusCode.INVALID_BASIC_CONSTRAINTS: "The basic constraints extension of an issuing certificate does not allow it to act as a CA.",
    ChainStatusCode.REVOCATION_STATUS_UNKNOWN: "The revocation function was unable to check revocation for the certificate.",
    ChainStatusCode.OFFLINE_REVOCATION: "The revocation function was unable to check revocation because the revocation server was offline.",
    ChainStatusCode.UNTRUSTED_ROOT: "A certificate chain processed, but terminated in a root certificate which is not trusted.",
    ChainStatusCode.PARTIAL_CHAIN: "Unable to build a certificate chain to a trusted root authority.",
    ChainStatusCode.CYCLIC: "The certificate chain loops back on a certificate already in the chain.",
}


def _status(code: ChainStatusCode) -> ChainStatus:
    return ChainStatus(code=code, information=_STATUS_INFORMATION[code])


@dataclass
class ChainPolicy:
    """
    Settings for a single chain build.

    Revocation servers are never contacted by this engine: any revocation mode
    other than NO_CHECK marks the covered elements as revocation-unknown.
    AIA issuer retrieval happens only when url_retrieval_timeout is positive.
    """

    revocation_mode: RevocationMode = RevocationMode.NO_CHECK
    revocation_flag: RevocationFlag = RevocationFlag.EXCLUDE_ROOT
    verification_time: Optional[datetime] = None  # None means now
    url_retrieval_timeout: float = 0.0
    extra_store: List[Certificate] = field(default_factory=list)
    max_depth: int = 10


def _find_issuer(
    cert: Certificate,
    candidates: Sequence[Certificate],
    at: datetime,
) -> Optional[Certificate]:
    """Find the candidate that issued cert, preferring candidates valid at the verification time."""
    named = [c for c in candidates if c.x509.subject == cert.x509.issuer]
    named.sort(key=lambda c: not c.is_time_valid(at))

    for candidate in named:
        try:
            cert.x509.verify_directly_issued_by(candidate.x509)
            logger.debug(f"Issuer of '{cert.subject}' found: {candidate.thumbprint}")
            return candidate
        except (InvalidSignature, ValueError, TypeError) as e:
            logger.debug(f"Candidate {candidate.thumbprint} did not sign '{cert.subject}': {e}")

    return None


def _fetch_issuer_via_aia(cert: Certificate, timeout: float) -> Optional[Certificate]:
    """
    Fetch the issuer of cert via its AIA CA Issuers URLs.

    Args:
        cert: Certificate whose issuer is missing
        timeout: HTTP request timeout in seconds

    Returns:
        Issuer certificate that verifies cert's signature, or None
    """
    cert_info = parse_certificate(cert)
    if not cert_info.ca_issuers_urls:
        return None

    for ca_issuer_url in cert_info.ca_issuers_urls:
        try:
            logger.debug(f"Fetching certificate from {ca_issuer_url}")
            with create_http_client(timeout=timeout) as client:
                response = client.get(
                    ca_issuer_url,
                    headers={"Accept": "application/pkix-cert,application/x-x509-ca-cert,*/*"},
                )
            if response.status_code != 200:
                logger.debug(f"Failed to fetch certificate from {ca_issuer_url}: HTTP {response.status_code}")
                continue

            if b"-----BEGIN CERTIFICATE-----" in response.content:
                fetched = Certificate.from_pem(response.content)
            else:
                fetched = Certificate.from_der(response.content)

            if _find_issuer(cert, [fetched], datetime.now(timezone.utc)):
                return fetched
            logger.warning(f"Certificate fetched from {ca_issuer_url} did not issue '{cert.subject}'")
        except httpx.TimeoutException:
            logger.debug(f"Timeout fetching certificate from {ca_issuer_url}")
        except httpx.RequestError as e:
            logger.debug(f"Request error fetching certificate from {ca_issuer_url}: {e}")
        except ValueError as e:
            logger.debug(f"Could not parse certificate from {ca_issuer_url}: {e}")

    return None


def _revocation_targets(policy: ChainPolicy, elements: List[ChainElement], anchored: bool) -> List[ChainElement]:
    if policy.revocation_mode == RevocationMode.NO_CHECK:
        return []
    if policy.revocation_flag == RevocationFlag.END_CERTIFICATE_ONLY:
        return elements[:1]
    if policy.revocation_flag == RevocationFlag.EXCLUDE_ROOT and anchored and len(elements) > 1:
        return elements[:-1]
    return list(elements)


def build_chain(
    certificate: Certificate,
    policy: Optional[ChainPolicy] = None,
    trusted: Iterable[Certificate] = (),
    intermediates: Iterable[Certificate] = (),
) -> ChainBuildResult:
    """
    Build a chain for certificate from leaf up to a self-signed anchor.

    Issuer candidates are drawn from the policy's extra store, the trusted
    certificates and the supplied intermediates. Certificates in the extra
    store or in trusted are accepted as anchors.

    Args:
        certificate: Leaf certificate
        policy: Chain policy (defaults to ChainPolicy())
        trusted: Trusted root certificates
        intermediates: Untrusted certificates usable as chain links

    Returns:
        ChainBuildResult with elements ordered leaf first
    """
    if certificate is None:
        raise ValueError("A certificate must be provided!")

    policy = policy or ChainPolicy()
    at = policy.verification_time or datetime.now(timezone.utc)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)

    anchors = list(policy.extra_store) + list(trusted)
    candidates = anchors + list(intermediates)
    anchor_thumbprints = {c.thumbprint for c in anchors}

    elements = [ChainElement(certificate)]
    seen = {certificate.thumbprint}
    chain_statuses: List[ChainStatus] = []
    current = certificate
    anchored = False

    while True:
        if current.is_self_signed:
            anchored = True
            break

        if len(elements) > policy.max_depth:
            logger.warning(f"Maximum chain depth {policy.max_depth} exceeded")
            chain_statuses.append(_status(ChainStatusCode.PARTIAL_CHAIN))
            break

        issuer = _find_issuer(current, candidates, at)
        if issuer is None and policy.url_retrieval_timeout > 0:
            issuer = _fetch_issuer_via_aia(current, policy.url_retrieval_timeout)

        if issuer is None:
            logger.debug(f"Could not find certificate for issuer: {current.issuer}")
            if any(c.x509.subject == current.x509.issuer for c in candidates):
                elements[-1].statuses.append(_status(ChainStatusCode.NOT_SIGNATURE_VALID))
            chain_statuses.append(_status(ChainStatusCode.PARTIAL_CHAIN))
            break

        if issuer.thumbprint in seen:
            chain_statuses.append(_status(ChainStatusCode.CYCLIC))
            break

        seen.add(issuer.thumbprint)
        elements.append(ChainElement(issuer))
        current = issuer

    for index, element in enumerate(elements):
        cert = element.certificate
        if not cert.is_time_valid(at):
            element.statuses.append(_status(ChainStatusCode.NOT_TIME_VALID))
        if index > 0:
            try:
                constraints = cert.x509.extensions.get_extension_for_class(x509.BasicConstraints).value
                if not constraints.ca:
                    element.statuses.append(_status(ChainStatusCode.INVALID_BASIC_CONSTRAINTS))
            except x509.ExtensionNotFound:
                pass
            except ValueError as e:
                raise ChainBuildingError(f"Could not read extensions of '{cert.subject}': {e}") from e

    if anchored and elements[-1].certificate.thumbprint not in anchor_thumbprints:
        elements[-1].statuses.append(_status(ChainStatusCode.UNTRUSTED_ROOT))

    for element in _revocation_targets(policy, elements, anchored):
        element.statuses.append(_status(ChainStatusCode.REVOCATION_STATUS_UNKNOWN))
        element.statuses.append(_status(ChainStatusCode.OFFLINE_REVOCATION))

    statuses: List[ChainStatus] = []
    codes = set()
    for status in [s for e in elements for s in e.statuses] + chain_statuses:
        if status.code not in codes:
            codes.add(status.code)
            statuses.append(status)

    logger.debug(f"Built chain of {len(elements)} element(s), {len(statuses)} problem(s)")
    return ChainBuildResult(elements=elements, statuses=statuses)


def is_from_ca(
    authority: Certificate,
    certificate: Certificate,
    store: Optional[RootStore] = None,
    intermediates: Iterable[Certificate] = (),
) -> bool:
    """
    Validate that certificate was issued, directly or through intermediates, by authority.

    The chain is built offline with revocation checking disabled; authority is
    injected into the extra store so it need not be installed. Trust requires
    the authority's thumbprint to appear in the built chain: a valid chain
    anchored in another trusted root is rejected.

    Args:
        authority: The pinned CA certificate
        certificate: The certificate to validate
        store: Optional root store whose certificates are also trusted
        intermediates: Optional untrusted intermediates

    Returns:
        True if the certificate came from the authority
    """
    if authority is None:
        raise ValueError("An authority certificate must be provided!")
    if certificate is None:
        raise ValueError("A certificate must be provided!")

    logger.debug("Attempting to verify authenticity of certificate...")
    logger.debug(f"Authority: {authority}")
    logger.debug(f"Cert: {certificate}")

    try:
        policy = ChainPolicy(
            revocation_mode=RevocationMode.NO_CHECK,
            revocation_flag=RevocationFlag.EXCLUDE_ROOT,
            verification_time=datetime.now(timezone.utc),
            url_retrieval_timeout=0.0,
            extra_store=[authority],
        )

        trusted: List[Certificate] = []
        if store is not None:
            with store.open(OpenMode.READ_ONLY) as handle:
                trusted = handle.certificates

        result = build_chain(certificate, policy, trusted=trusted, intermediates=intermediates)

        if not result.is_valid:
            errors = [str(status) for status in result.statuses]
            certificate_errors = ", ".join(errors) if errors else "Unknown errors."
            logger.error("Certificate validation failed")
            logger.error(f"Trust chain did not complete to the known authority anchor. Errors: {certificate_errors}")
            return False

        if any(thumbprint == authority.thumbprint for thumbprint in result.thumbprints):
            return True

        logger.error("Certificate validation failed")
        logger.error("Trust chain did not complete to the known authority anchor. Thumbprints did not match.")
        return False

    except Exception as e:
        logger.error(f"Could not verify certificate is from CA: {e}")
        return False
