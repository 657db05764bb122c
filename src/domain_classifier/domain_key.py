"""
Domain key normalization and suffix handling.

Domain keys index the rule table. Hostnames are matched by progressively
dropping their leftmost label; IP-shaped names only ever match exactly.
"""

import ipaddress
import re
from typing import Iterator, Optional

import idna

from domain_classifier.enums import RuleFileErrorCode
from domain_classifier.exceptions import RuleFileError


LABEL_SEPARATOR = "."

# Control characters and whitespace never occur in a usable key
FORBIDDEN_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f\s]")

_NUMERIC_LABELS_PATTERN = re.compile(r"^\d+(\.\d+)*$")


def normalize_domain(raw_domain: str) -> str:
    """
    Convert a domain to its canonical key form (lowercase, IDNA).

    Args:
        raw_domain: Domain as written in a rule file or seen in traffic

    Returns:
        Canonical key; the empty string stays empty

    Raises:
        RuleFileError: If the name holds forbidden characters or IDNA
            encoding fails
    """
    domain = raw_domain.strip().lower()
    if domain.endswith(LABEL_SEPARATOR):
        domain = domain[:-1]

    if FORBIDDEN_CHARS_PATTERN.search(domain):
        raise RuleFileError(
            code=RuleFileErrorCode.INVALID_DOMAIN.value,
            message=f"Domain contains forbidden characters: {raw_domain!r}",
            details={"domain": raw_domain},
        )

    if any(ord(c) > 127 for c in domain):
        try:
            domain = idna.encode(domain, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_DOMAIN.value,
                message=f"IDNA encoding failed: {e}",
                details={"domain": raw_domain, "idna_error": str(e)},
            )

    return domain


def lookup_key(raw_domain: Optional[str]) -> str:
    """Normalize a queried domain; never raises."""
    if not isinstance(raw_domain, str) or not raw_domain:
        return ""
    try:
        return normalize_domain(raw_domain)
    except RuleFileError:
        return raw_domain.strip().lower()


def is_ip_shaped(domain: str) -> bool:
    """
    Check whether a name must be matched exactly.

    Covers real IPv4/IPv6 literals as well as dotted names made only of
    numeric labels, which are never valid hostnames.
    """
    if not domain:
        return False
    candidate = domain
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        ipaddress.ip_address(candidate)
        return True
    except ValueError:
        pass
    return bool(_NUMERIC_LABELS_PATTERN.match(domain))


def strip_leading_label(domain: str) -> str:
    """Drop everything up to and including the first separator."""
    _, separator, rest = domain.partition(LABEL_SEPARATOR)
    return rest if separator else ""


def iter_suffixes(domain: str) -> Iterator[str]:
    """
    Yield the domain and each more general suffix.

    Example:
        a.b.example.com -> a.b.example.com, b.example.com, example.com, com
    """
    while domain:
        yield domain
        domain = strip_leading_label(domain)
