"""
Data models for the domain classifier system.

This module defines the structures held in the domain table, the candidates
read from categorization replies, and the outcome of a rule load.
"""

from dataclasses import dataclass, field
from typing import Optional

from .enums import ServiceCategory, TransportProtocol
from .exceptions import RuleFileError


MIN_PORT = 0
MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    """Inclusive port interval mapped to a category."""

    first_port: int
    last_port: int
    category: ServiceCategory

    @classmethod
    def full(cls, category: ServiceCategory) -> "PortRange":
        """Range covering every port."""
        return cls(MIN_PORT, MAX_PORT, category)

    def contains(self, port: int) -> bool:
        return self.first_port <= port <= self.last_port

    @property
    def is_full(self) -> bool:
        return self.first_port == MIN_PORT and self.last_port == MAX_PORT


@dataclass
class ClassifiedDomain:
    """Per-protocol port ranges for one domain key, in insertion order."""

    tcp_ranges: list[PortRange] = field(default_factory=list)
    udp_ranges: list[PortRange] = field(default_factory=list)

    @classmethod
    def full_range(cls, category: ServiceCategory) -> "ClassifiedDomain":
        """Entry granting a category on every port of both protocols."""
        return cls(
            tcp_ranges=[PortRange.full(category)],
            udp_ranges=[PortRange.full(category)],
        )

    def ranges_for(self, protocol: TransportProtocol) -> list[PortRange]:
        if protocol is TransportProtocol.TCP:
            return self.tcp_ranges
        return self.udp_ranges

    def match(self, port: int, protocol: TransportProtocol) -> Optional[ServiceCategory]:
        """
        Return the first non-unclassified category whose range holds the port.

        Args:
            port: Destination port
            protocol: Transport protocol selecting the range list

        Returns:
            The matching category or None
        """
        for port_range in self.ranges_for(protocol):
            if (
                port_range.contains(port)
                and port_range.category is not ServiceCategory.UNCLASSIFIED
            ):
                return port_range.category
        return None

    @property
    def range_count(self) -> int:
        return len(self.tcp_ranges) + len(self.udp_ranges)


@dataclass(frozen=True)
class CategoryCandidate:
    """A single category entry from a categorization reply."""

    category_id: str
    score: str
    confident: bool


@dataclass
class RuleLoadResult:
    """Outcome of loading a rule document."""

    success: bool
    domain_count: int = 0
    range_count: int = 0
    error: Optional[RuleFileError] = None
