"""
Rule Store for the domain classifier system.

Holds the domain table built from a static category-definition document and
answers exact, suffix and port-only lookups against it. The table has a single
owner lock shared by lookups, rule loads and external classification results.

Rule document format:
    { "category name": [ descriptor, ... ], ... }

Each descriptor takes one of these forms:
    ["domain"]                              - every port, both protocols
    ["domain", [[f, l], ...], [[f, l], ...]] - TCP ranges, UDP ranges
    ["domain", [], []]                      - every port, both protocols
    ["", [[f, l]], []]                      - port-only rule, any domain

An empty (or null) range list means no rule for that protocol. Any invalid
entry fails the whole load and leaves the table empty.
"""

import json
import threading
from pathlib import Path
from typing import Any, Optional, Union

from .domain_key import is_ip_shaped, iter_suffixes, lookup_key, normalize_domain
from .enums import LogLevel, RuleFileErrorCode, ServiceCategory, TransportProtocol
from .event_log import EventLogger
from .exceptions import RuleFileError
from .models import MAX_PORT, MIN_PORT, ClassifiedDomain, PortRange, RuleLoadResult


# Category names accepted in rule documents besides the enum values
RULE_CATEGORY_ALIASES: dict[str, ServiceCategory] = {
    "streaming": ServiceCategory.STREAMING_VIDEO,
    "downloading or streaming": ServiceCategory.STREAMING_VIDEO,
    "live_streaming": ServiceCategory.LIVE_STREAMING_UDP,
    "browsing": ServiceCategory.BROWSING,
    "gaming": ServiceCategory.GAMING,
}

# Values that can never be granted by a rule
NON_RULE_CATEGORIES = frozenset({
    ServiceCategory.UNCLASSIFIED,
    ServiceCategory.UNDEFINED,
    ServiceCategory.PENDING,
})

PORT_ONLY_KEY = ""


def category_from_rule_name(name: str) -> ServiceCategory:
    """
    Map a rule document category name to a service category.

    Raises:
        RuleFileError: If the name is not a known category
    """
    category = RULE_CATEGORY_ALIASES.get(name)
    if category is None:
        try:
            category = ServiceCategory(name)
        except ValueError:
            category = None

    if category is None or category in NON_RULE_CATEGORIES:
        raise RuleFileError(
            code=RuleFileErrorCode.UNKNOWN_CATEGORY.value,
            message=f"Unknown service category: {name!r}",
            details={"category": name},
        )
    return category


class RuleStore:
    """
    Thread-safe domain table with suffix matching.

    Lookups and writes both hold the table lock; callers only ever receive
    category values, never references into the table.
    """

    COMPONENT = "rule_store"

    def __init__(self, logger: Optional[EventLogger] = None) -> None:
        """
        Initialize an empty store.

        Args:
            logger: Optional event logger
        """
        self._table: dict[str, ClassifiedDomain] = {}
        self._lock = threading.Lock()
        self._logger = logger

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)

    def __contains__(self, domain: str) -> bool:
        with self._lock:
            return lookup_key(domain) in self._table

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, document: Any) -> RuleLoadResult:
        """
        Replace the table with the rules in a parsed document.

        The new table is built aside and swapped in only when every entry is
        valid. On failure the table is cleared so no partial rule set is
        ever served.

        Args:
            document: Parsed rule document (dict of category -> descriptors)

        Returns:
            RuleLoadResult describing the outcome
        """
        try:
            table = self._build_table(document)
        except RuleFileError as e:
            return self.load_failed(e)

        range_count = sum(entry.range_count for entry in table.values())
        with self._lock:
            self._table = table

        self._log(
            LogLevel.INFO,
            "Rules loaded",
            {"domains": len(table), "ranges": range_count},
        )
        return RuleLoadResult(
            success=True,
            domain_count=len(table),
            range_count=range_count,
        )

    def load_text(self, text: Union[str, bytes]) -> RuleLoadResult:
        """Parse JSON text and load it; malformed JSON is a load failure."""
        try:
            document = json.loads(text)
        except ValueError as e:
            return self.load_failed(RuleFileError(
                code=RuleFileErrorCode.INVALID_JSON.value,
                message=f"Rule document is not valid JSON: {e}",
            ))
        return self.load(document)

    def load_file(self, path: Union[str, Path]) -> RuleLoadResult:
        """
        Read a rule file whole and load it.

        Raises:
            RuleFileError: If the file cannot be opened or read
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RuleFileError(
                code=RuleFileErrorCode.UNREADABLE.value,
                message=str(e),
                details={"path": str(path)},
            )
        return self.load_text(text)

    def load_failed(self, error: RuleFileError) -> RuleLoadResult:
        """Clear the table after a failed load and report the error."""
        with self._lock:
            self._table = {}
        self._log(
            LogLevel.ERROR,
            "Rule load failed, table cleared",
            {"code": error.code, "error_message": error.message, "details": error.details},
        )
        return RuleLoadResult(success=False, error=error)

    def clear(self) -> None:
        with self._lock:
            self._table = {}

    def _build_table(self, document: Any) -> dict[str, ClassifiedDomain]:
        if not isinstance(document, dict):
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_DOCUMENT.value,
                message="Rule document must be an object of category lists",
                details={"type": type(document).__name__},
            )

        table: dict[str, ClassifiedDomain] = {}
        for name, descriptors in document.items():
            category = category_from_rule_name(name)
            if not isinstance(descriptors, list):
                raise RuleFileError(
                    code=RuleFileErrorCode.INVALID_DOCUMENT.value,
                    message=f"Category {name!r} must map to a list of domains",
                    details={"category": name},
                )
            for descriptor in descriptors:
                self._add_descriptor(table, descriptor, category)
        return table

    def _add_descriptor(
        self,
        table: dict[str, ClassifiedDomain],
        descriptor: Any,
        category: ServiceCategory,
    ) -> None:
        if not isinstance(descriptor, list) or len(descriptor) not in (1, 3):
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_DESCRIPTOR.value,
                message="Domain descriptor must be a list of 1 or 3 elements",
                details={"descriptor": descriptor},
            )

        name = descriptor[0]
        if not isinstance(name, str):
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_DOMAIN.value,
                message="Domain name must be a string",
                details={"descriptor": descriptor},
            )
        key = normalize_domain(name)
        if key == PORT_ONLY_KEY and name != PORT_ONLY_KEY:
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_DOMAIN.value,
                message=f"Domain name is blank: {name!r}",
                details={"descriptor": descriptor},
            )

        if len(descriptor) == 1:
            tcp_ranges: list[PortRange] = []
            udp_ranges: list[PortRange] = []
        else:
            tcp_ranges = self._parse_ranges(descriptor[1], category, key)
            udp_ranges = self._parse_ranges(descriptor[2], category, key)

        if not tcp_ranges and not udp_ranges:
            if key == PORT_ONLY_KEY:
                raise RuleFileError(
                    code=RuleFileErrorCode.INVALID_DOMAIN.value,
                    message="A rule without a domain name must list ports",
                    details={"descriptor": descriptor},
                )
            if key in table:
                raise RuleFileError(
                    code=RuleFileErrorCode.DUPLICATE_DOMAIN.value,
                    message=f"Domain {key!r} is already defined",
                    details={"domain": key},
                )
            table[key] = ClassifiedDomain.full_range(category)
            return

        entry = table.setdefault(key, ClassifiedDomain())
        entry.tcp_ranges.extend(tcp_ranges)
        entry.udp_ranges.extend(udp_ranges)

    @staticmethod
    def _parse_ranges(
        ranges: Any,
        category: ServiceCategory,
        key: str,
    ) -> list[PortRange]:
        if ranges is None:
            return []
        if not isinstance(ranges, list):
            raise RuleFileError(
                code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
                message="Port ranges must be a list of [first, last] pairs",
                details={"domain": key, "ranges": ranges},
            )

        parsed = []
        for pair in ranges:
            if not isinstance(pair, list) or len(pair) != 2:
                raise RuleFileError(
                    code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
                    message="Port range must be a [first, last] pair",
                    details={"domain": key, "range": pair},
                )
            first, last = (_port_number(value, key) for value in pair)
            if first > last:
                raise RuleFileError(
                    code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
                    message=f"Port range [{first}, {last}] is out of order",
                    details={"domain": key, "range": pair},
                )
            parsed.append(PortRange(first, last, category))
        return parsed

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup_exact(
        self,
        domain: str,
        port: int,
        protocol: TransportProtocol,
    ) -> Optional[ServiceCategory]:
        """
        Exact-match lookup of one domain key.

        Returns:
            The first matching real category, or None
        """
        key = lookup_key(domain)
        with self._lock:
            return self._match_key(key, port, protocol)

    def match(
        self,
        domain: str,
        port: int,
        protocol: TransportProtocol,
    ) -> ServiceCategory:
        """
        Find the most specific rule for an endpoint.

        IP-shaped names are matched exactly. Hostnames fall back through
        their suffixes (a.b.example.com, b.example.com, example.com, com).
        Port-only rules apply last.

        Returns:
            The matching category, or UNCLASSIFIED
        """
        key = lookup_key(domain)
        with self._lock:
            if is_ip_shaped(key):
                candidates = [key]
            else:
                candidates = list(iter_suffixes(key))
            candidates.append(PORT_ONLY_KEY)

            for candidate in candidates:
                category = self._match_key(candidate, port, protocol)
                if category is not None:
                    return category

        return ServiceCategory.UNCLASSIFIED

    def _match_key(
        self,
        key: str,
        port: int,
        protocol: TransportProtocol,
    ) -> Optional[ServiceCategory]:
        entry = self._table.get(key)
        if entry is None:
            return None
        return entry.match(port, protocol)

    # ------------------------------------------------------------------
    # External results
    # ------------------------------------------------------------------

    def apply_external_result(self, domain: str, category: ServiceCategory) -> bool:
        """
        Record an externally resolved category for an exact domain.

        The entry covers every port of both protocols and replaces any
        previous entry for that key. Unresolved values are not recorded.

        Returns:
            True if the table was updated
        """
        if not category.is_resolved:
            return False

        key = lookup_key(domain)
        if not key:
            return False

        with self._lock:
            self._table[key] = ClassifiedDomain.full_range(category)
        return True

    def snapshot(self) -> dict[str, ClassifiedDomain]:
        """Return a deep copy of the table."""
        with self._lock:
            return {
                key: ClassifiedDomain(
                    tcp_ranges=list(entry.tcp_ranges),
                    udp_ranges=list(entry.udp_ranges),
                )
                for key, entry in self._table.items()
            }

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, self.COMPONENT, message, data)


def _port_number(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleFileError(
            code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
            message=f"Port must be a number: {value!r}",
            details={"domain": key},
        )
    if isinstance(value, float) and not value.is_integer():
        raise RuleFileError(
            code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
            message=f"Port must be an integer: {value!r}",
            details={"domain": key},
        )
    port = int(value)
    if not MIN_PORT <= port <= MAX_PORT:
        raise RuleFileError(
            code=RuleFileErrorCode.INVALID_PORT_RANGE.value,
            message=f"Port {port} is outside {MIN_PORT}-{MAX_PORT}",
            details={"domain": key},
        )
    return port
