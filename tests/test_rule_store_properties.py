"""
Property-based tests for the rule store.

Uses Hypothesis for property-based testing to verify rule loading, suffix
matching, port scoping, IP exactness and load-failure behaviour.
"""

import io
import json
import string

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_classifier.enums import RuleFileErrorCode, ServiceCategory, TransportProtocol
from domain_classifier.event_log import EventLogger
from domain_classifier.exceptions import RuleFileError
from domain_classifier.models import MAX_PORT, MIN_PORT
from domain_classifier.rule_store import (
    NON_RULE_CATEGORIES,
    RuleStore,
    category_from_rule_name,
)


RULE_CATEGORIES = {
    "gaming": ServiceCategory.GAMING,
    "browsing": ServiceCategory.BROWSING,
    "streaming": ServiceCategory.STREAMING_VIDEO,
    "downloading or streaming": ServiceCategory.STREAMING_VIDEO,
    "live_streaming": ServiceCategory.LIVE_STREAMING_UDP,
}


def label_strategy() -> st.SearchStrategy[str]:
    """Generate hostname labels that are never all digits."""
    return st.text(
        alphabet=string.ascii_lowercase + string.digits,
        min_size=1,
        max_size=12,
    ).filter(lambda s: not s.isdigit())


def hostname_strategy() -> st.SearchStrategy[str]:
    """Generate dotted hostnames such as 'abc.example.com'."""
    return st.lists(label_strategy(), min_size=2, max_size=4).map(".".join)


port_strategy = st.integers(min_value=MIN_PORT, max_value=MAX_PORT)
protocol_strategy = st.sampled_from(list(TransportProtocol))
rule_name_strategy = st.sampled_from(sorted(RULE_CATEGORIES))


@st.composite
def port_range_strategy(draw) -> list[int]:
    """Generate a valid [first, last] pair."""
    first = draw(port_strategy)
    last = draw(st.integers(min_value=first, max_value=MAX_PORT))
    return [first, last]


@st.composite
def rule_document_strategy(draw) -> dict:
    """Generate valid rule documents with unique full-range domains."""
    domains = draw(st.lists(hostname_strategy(), min_size=1, max_size=8, unique=True))
    document: dict = {}
    for domain in domains:
        name = draw(rule_name_strategy)
        if draw(st.booleans()):
            descriptor = [domain]
        else:
            descriptor = [
                domain,
                draw(st.lists(port_range_strategy(), min_size=1, max_size=3)),
                draw(st.lists(port_range_strategy(), max_size=3)),
            ]
        document.setdefault(name, []).append(descriptor)
    return document


class TestFullRangeProperty:
    """A domain with a full-range rule resolves on every port of both protocols."""

    @given(
        domain=hostname_strategy(),
        name=rule_name_strategy,
        port=port_strategy,
        protocol=protocol_strategy,
    )
    @settings(max_examples=100)
    def test_full_range_rule_matches_any_endpoint(
        self,
        domain: str,
        name: str,
        port: int,
        protocol: TransportProtocol,
    ) -> None:
        store = RuleStore()
        result = store.load({name: [[domain]]})

        assert result.success
        assert store.match(domain, port, protocol) == RULE_CATEGORIES[name]

    @given(domain=hostname_strategy(), port=port_strategy, protocol=protocol_strategy)
    @settings(max_examples=100)
    def test_empty_range_lists_mean_full_range(
        self,
        domain: str,
        port: int,
        protocol: TransportProtocol,
    ) -> None:
        store = RuleStore()
        assert store.load({"gaming": [[domain, [], []]]}).success
        assert store.match(domain, port, protocol) == ServiceCategory.GAMING


class TestSuffixFallbackProperty:
    """Subdomains fall back to the rule of their closest listed suffix."""

    @given(
        base=hostname_strategy(),
        prefix=st.lists(label_strategy(), min_size=1, max_size=3),
        port=port_strategy,
        protocol=protocol_strategy,
    )
    @settings(max_examples=100)
    def test_subdomain_matches_parent_rule(
        self,
        base: str,
        prefix: list[str],
        port: int,
        protocol: TransportProtocol,
    ) -> None:
        store = RuleStore()
        store.load({"browsing": [[base]]})
        subdomain = ".".join(prefix + [base])

        assert store.match(subdomain, port, protocol) == store.match(base, port, protocol)
        assert store.match(subdomain, port, protocol) == ServiceCategory.BROWSING

    def test_most_specific_rule_wins(self) -> None:
        store = RuleStore()
        store.load({
            "browsing": [["example.com"]],
            "gaming": [["play.example.com"]],
        })

        assert store.match("a.play.example.com", 80, TransportProtocol.TCP) == ServiceCategory.GAMING
        assert store.match("www.example.com", 80, TransportProtocol.TCP) == ServiceCategory.BROWSING

    def test_suffix_entry_without_matching_port_falls_through(self) -> None:
        store = RuleStore()
        store.load({
            "browsing": [["example.com"]],
            "gaming": [["play.example.com", [[3000, 3100]], []]],
        })

        assert store.match("play.example.com", 443, TransportProtocol.TCP) == ServiceCategory.BROWSING

    def test_parent_does_not_match_child_rule(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["play.example.com"]]})

        assert store.match("example.com", 80, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED


class TestPortScopingProperty:
    """Ranged rules only apply to their ports and protocol."""

    def test_tcp_range_rule(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [[1000, 2000]], []]]})

        assert store.match("x.com", 1500, TransportProtocol.TCP) == ServiceCategory.GAMING
        assert store.match("x.com", 50, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED
        assert store.match("x.com", 1500, TransportProtocol.UDP) == ServiceCategory.UNCLASSIFIED

    @given(
        bounds=port_range_strategy(),
        port=port_strategy,
    )
    @settings(max_examples=100)
    def test_range_bounds_are_inclusive(self, bounds: list[int], port: int) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [], [bounds]]]})
        first, last = bounds

        expected = ServiceCategory.GAMING if first <= port <= last else ServiceCategory.UNCLASSIFIED
        assert store.match("x.com", port, TransportProtocol.UDP) == expected
        assert store.match("x.com", port, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED

    def test_first_listed_range_wins(self) -> None:
        store = RuleStore()
        store.load({
            "gaming": [["x.com", [[1000, 2000]], []]],
            "browsing": [["x.com", [[0, 65535]], []]],
        })

        assert store.match("x.com", 1500, TransportProtocol.TCP) == ServiceCategory.GAMING
        assert store.match("x.com", 80, TransportProtocol.TCP) == ServiceCategory.BROWSING

    def test_port_only_rule_applies_to_any_domain(self) -> None:
        store = RuleStore()
        store.load({
            "gaming": [["", [], [[27000, 27050]]]],
            "browsing": [["example.com"]],
        })

        assert store.match("unknown.org", 27015, TransportProtocol.UDP) == ServiceCategory.GAMING
        assert store.match("", 27015, TransportProtocol.UDP) == ServiceCategory.GAMING
        assert store.match("example.com", 27015, TransportProtocol.UDP) == ServiceCategory.BROWSING
        assert store.match("unknown.org", 80, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED


class TestIPExactnessProperty:
    """IP-shaped keys match only the identical string."""

    def test_ip_rule_does_not_match_longer_numeric_name(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["1.2.3.4"]]})

        assert store.match("1.2.3.4", 80, TransportProtocol.TCP) == ServiceCategory.GAMING
        assert store.match("9.1.2.3.4", 80, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED

    @given(
        octets=st.lists(st.integers(min_value=0, max_value=255), min_size=4, max_size=4),
        extra=st.integers(min_value=0, max_value=255),
    )
    @settings(max_examples=100)
    def test_ip_lookups_never_strip_labels(self, octets: list[int], extra: int) -> None:
        rule_ip = ".".join(str(o) for o in octets)
        lookup_ip = f"{extra}.{rule_ip}"

        store = RuleStore()
        store.load({"gaming": [[rule_ip]]})

        assert store.match(lookup_ip, 80, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED

    def test_ipv6_literal_matches_exactly(self) -> None:
        store = RuleStore()
        store.load({"streaming": [["2001:db8::1"]]})

        assert store.match("2001:db8::1", 443, TransportProtocol.TCP) == ServiceCategory.STREAMING_VIDEO
        assert store.match("2001:db8::2", 443, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED


class TestIdempotentLoadProperty:
    """Loading a document replaces, never accumulates."""

    @given(document=rule_document_strategy())
    @settings(max_examples=100)
    def test_loading_twice_yields_same_table(self, document: dict) -> None:
        store = RuleStore()
        first = store.load(document)
        first_snapshot = store.snapshot()
        second = store.load(document)

        assert first.success and second.success
        assert store.snapshot() == first_snapshot
        assert first.range_count == second.range_count

    def test_second_document_replaces_first(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["a.com"]]})
        store.load({"browsing": [["b.com"]]})

        assert "a.com" not in store
        assert store.match("a.com", 80, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED
        assert store.match("b.com", 80, TransportProtocol.TCP) == ServiceCategory.BROWSING


class TestLoadFailureProperty:
    """Any invalid entry fails the whole load and leaves the table empty."""

    def test_out_of_order_range_on_first_load_leaves_table_empty(self) -> None:
        store = RuleStore()
        result = store.load({"gaming": [["x.com", [[2000, 1000]], []]]})

        assert not result.success
        assert result.error.code == RuleFileErrorCode.INVALID_PORT_RANGE.value
        assert len(store) == 0
        assert store.match("x.com", 1500, TransportProtocol.TCP) == ServiceCategory.UNCLASSIFIED

    def test_failed_reload_clears_previous_rules(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["a.com"]]})
        result = store.load({"gaming": [["b.com"], ["x.com", [[2000, 1000]], []]]})

        assert not result.success
        assert len(store) == 0

    @pytest.mark.parametrize("document,code", [
        ([["a.com"]], RuleFileErrorCode.INVALID_DOCUMENT),
        ({"gaming": "a.com"}, RuleFileErrorCode.INVALID_DOCUMENT),
        ({"chess": [["a.com"]]}, RuleFileErrorCode.UNKNOWN_CATEGORY),
        ({"pending": [["a.com"]]}, RuleFileErrorCode.UNKNOWN_CATEGORY),
        ({"gaming": [["a.com", [[1, 2]]]]}, RuleFileErrorCode.INVALID_DESCRIPTOR),
        ({"gaming": [[]]}, RuleFileErrorCode.INVALID_DESCRIPTOR),
        ({"gaming": [[42]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [[""]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [["   ", [[80, 80]], []]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [[".", [[80, 80]], []]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [["   "]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [["bad domain.com"]]}, RuleFileErrorCode.INVALID_DOMAIN),
        ({"gaming": [["a.com", [[1, 70000]], []]]}, RuleFileErrorCode.INVALID_PORT_RANGE),
        ({"gaming": [["a.com", [[-1, 10]], []]]}, RuleFileErrorCode.INVALID_PORT_RANGE),
        ({"gaming": [["a.com", [[1]], []]]}, RuleFileErrorCode.INVALID_PORT_RANGE),
        ({"gaming": [["a.com", [["1", "2"]], []]]}, RuleFileErrorCode.INVALID_PORT_RANGE),
        ({"gaming": [["a.com", [[True, 2]], []]]}, RuleFileErrorCode.INVALID_PORT_RANGE),
        ({"gaming": [["a.com"], ["a.com"]]}, RuleFileErrorCode.DUPLICATE_DOMAIN),
    ])
    def test_invalid_documents_are_rejected(self, document, code) -> None:
        store = RuleStore()
        result = store.load(document)

        assert not result.success
        assert result.error.code == code.value
        assert len(store) == 0

    def test_invalid_json_text_is_a_load_failure(self) -> None:
        store = RuleStore()
        result = store.load_text("{not json")

        assert not result.success
        assert result.error.code == RuleFileErrorCode.INVALID_JSON.value

    def test_unreadable_file_raises(self, tmp_path) -> None:
        store = RuleStore()

        with pytest.raises(RuleFileError) as excinfo:
            store.load_file(tmp_path / "missing.json")

        assert excinfo.value.code == RuleFileErrorCode.UNREADABLE.value

    def test_load_file_reads_document(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"gaming": [["x.com", [[1000, 2000]], []]]}), encoding="utf-8")
        store = RuleStore()

        result = store.load_file(path)

        assert result.success
        assert result.domain_count == 1
        assert result.range_count == 1

    def test_failure_is_logged(self) -> None:
        logger = EventLogger(output_stream=io.StringIO())
        store = RuleStore(logger=logger)
        store.load({"gaming": [["x.com", [[2000, 1000]], []]]})

        assert any(entry.component == "rule_store" for entry in logger.entries)
        assert logger.entries[-1].data["code"] == RuleFileErrorCode.INVALID_PORT_RANGE.value


class TestRuleNormalizationProperty:
    """Rule keys and lookups share one canonical form."""

    @given(domain=hostname_strategy(), port=port_strategy)
    @settings(max_examples=100)
    def test_case_and_trailing_dot_are_ignored(self, domain: str, port: int) -> None:
        store = RuleStore()
        store.load({"gaming": [[domain.upper() + "."]]})

        assert store.match(domain, port, TransportProtocol.TCP) == ServiceCategory.GAMING
        assert store.match(domain.upper(), port, TransportProtocol.TCP) == ServiceCategory.GAMING

    def test_unicode_rule_matches_punycode_lookup(self) -> None:
        store = RuleStore()
        store.load({"browsing": [["münchen.de"]]})

        assert store.match("xn--mnchen-3ya.de", 80, TransportProtocol.TCP) == ServiceCategory.BROWSING
        assert store.match("www.münchen.de", 80, TransportProtocol.TCP) == ServiceCategory.BROWSING


class TestCategoryNamesProperty:
    """Rule documents name categories by alias or by enum value."""

    @pytest.mark.parametrize("name,category", sorted(RULE_CATEGORIES.items()))
    def test_aliases(self, name: str, category: ServiceCategory) -> None:
        assert category_from_rule_name(name) == category

    @given(category=st.sampled_from([
        c for c in ServiceCategory if c not in NON_RULE_CATEGORIES
    ]))
    @settings(max_examples=100)
    def test_enum_values_accepted(self, category: ServiceCategory) -> None:
        assert category_from_rule_name(category.value) == category

    @pytest.mark.parametrize("category", sorted(NON_RULE_CATEGORIES, key=lambda c: c.value))
    def test_non_rule_values_rejected(self, category: ServiceCategory) -> None:
        with pytest.raises(RuleFileError):
            category_from_rule_name(category.value)


class TestExternalResultProperty:
    """External results become full-range exact entries; unresolved ones are dropped."""

    @given(domain=hostname_strategy(), port=port_strategy, protocol=protocol_strategy)
    @settings(max_examples=100)
    def test_resolved_category_written_full_range(
        self,
        domain: str,
        port: int,
        protocol: TransportProtocol,
    ) -> None:
        store = RuleStore()

        assert store.apply_external_result(domain, ServiceCategory.STREAMING_VIDEO)
        assert store.match(domain, port, protocol) == ServiceCategory.STREAMING_VIDEO

    @pytest.mark.parametrize("category", [ServiceCategory.UNCLASSIFIED, ServiceCategory.PENDING])
    def test_unresolved_category_not_written(self, category: ServiceCategory) -> None:
        store = RuleStore()

        assert not store.apply_external_result("z.com", category)
        assert "z.com" not in store

    def test_external_result_replaces_ranged_entry(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [[1000, 2000]], []]]})
        store.apply_external_result("x.com", ServiceCategory.BROWSING)

        assert store.match("x.com", 1500, TransportProtocol.TCP) == ServiceCategory.BROWSING
        assert store.match("x.com", 53, TransportProtocol.UDP) == ServiceCategory.BROWSING

    def test_empty_domain_not_written(self) -> None:
        store = RuleStore()

        assert not store.apply_external_result("", ServiceCategory.GAMING)
        assert len(store) == 0

    def test_snapshot_is_a_copy(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [[1000, 2000]], []]]})
        snapshot = store.snapshot()
        snapshot["x.com"].tcp_ranges.clear()

        assert store.match("x.com", 1500, TransportProtocol.TCP) == ServiceCategory.GAMING
