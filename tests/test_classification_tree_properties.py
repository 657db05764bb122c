"""
Property-based tests for the classification tree.

A synchronous stand-in replaces the external classifier so the pending,
deduplication and write-back rules can be checked deterministically.
"""

import io
import json
import string
from typing import Callable, Optional

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_classifier.classification_tree import (
    ClassificationTree,
    coerce_port,
    coerce_protocol,
)
from domain_classifier.config import (
    ExternalClassifierConfig,
    RuleStoreConfig,
    SystemConfig,
)
from domain_classifier.enums import LogLevel, ServiceCategory, TransportProtocol
from domain_classifier.event_log import EventLogger
from domain_classifier.exceptions import RuleFileError
from domain_classifier.pending_tracker import PendingRequestTracker
from domain_classifier.rule_store import RuleStore


class FakeClassifier:
    """Records requests; results are delivered by calling complete()."""

    def __init__(self) -> None:
        self.tracker = PendingRequestTracker()
        self.requests: list[str] = []
        self.callback: Optional[Callable[[str, ServiceCategory], None]] = None
        self.stopped = False
        self.cancelled = False

    @property
    def requests_sent(self) -> int:
        return len(self.requests)

    def register_result_callback(self, callback) -> None:
        self.callback = callback

    def add_request(self, domain: str) -> bool:
        if not self.is_accepting():
            return False
        added = self.tracker.enqueue(domain)
        if added:
            self.requests.append(domain)
        return added

    def is_pending(self, domain: str) -> bool:
        return self.tracker.is_pending(domain)

    def is_accepting(self) -> bool:
        return not (self.stopped or self.cancelled)

    def complete(self, domain: str, category: ServiceCategory) -> None:
        self.callback(domain, category)
        self.tracker.remove(domain)

    def stop(self, timeout=None) -> bool:
        self.stopped = True
        return True

    def cancel(self, timeout=None) -> bool:
        self.cancelled = True
        return True


label = st.text(alphabet=string.ascii_lowercase, min_size=1, max_size=10)
hostname = st.lists(label, min_size=2, max_size=4).map(".".join)
port_strategy = st.integers(min_value=0, max_value=65535)
protocol_strategy = st.sampled_from(["tcp", "udp", "TCP", TransportProtocol.UDP])
resolved_categories = st.sampled_from([c for c in ServiceCategory if c.is_resolved])


class TestPendingProperty:
    """Unknown domains are queued once and reported as PENDING."""

    @given(domain=hostname, port=port_strategy, protocol=protocol_strategy)
    @settings(max_examples=100)
    def test_unknown_domain_is_pending_and_queued_once(
        self,
        domain: str,
        port: int,
        protocol,
    ) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        first = tree.resolve(domain, port, protocol)
        second = tree.resolve(domain, port, protocol)

        assert first == ServiceCategory.PENDING
        assert second == ServiceCategory.PENDING
        assert classifier.requests == [domain]

    def test_pending_wins_over_rules(self) -> None:
        store = RuleStore()
        store.load({"browsing": [["example.com"]]})
        classifier = FakeClassifier()
        tree = ClassificationTree(store=store, classifier=classifier)
        classifier.add_request("www.example.com")

        assert tree.resolve("www.example.com", 80, "tcp") == ServiceCategory.PENDING

    def test_rule_match_is_not_queued(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [[1000, 2000]], []]]})
        classifier = FakeClassifier()
        tree = ClassificationTree(store=store, classifier=classifier)

        assert tree.resolve("x.com", 1500, "tcp") == ServiceCategory.GAMING
        assert classifier.requests == []

    def test_port_miss_on_known_domain_is_queued(self) -> None:
        store = RuleStore()
        store.load({"gaming": [["x.com", [[1000, 2000]], []]]})
        classifier = FakeClassifier()
        tree = ClassificationTree(store=store, classifier=classifier)

        assert tree.resolve("x.com", 50, "tcp") == ServiceCategory.PENDING
        assert classifier.requests == ["x.com"]

    def test_previous_pending_is_not_requeued(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        result = tree.resolve("z.com", 80, "tcp", previous_status=ServiceCategory.PENDING)

        assert result == ServiceCategory.UNCLASSIFIED
        assert classifier.requests == []

    def test_empty_domain_is_never_queued(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        assert tree.resolve("", 80, "tcp") == ServiceCategory.UNCLASSIFIED
        assert classifier.requests == []

    def test_without_classifier_unknown_is_unclassified(self) -> None:
        tree = ClassificationTree()

        assert tree.resolve("unknown.com", 80, "tcp") == ServiceCategory.UNCLASSIFIED


class TestEventualResolutionProperty:
    """Callback results answer later lookups without new requests."""

    @given(
        domain=hostname,
        category=resolved_categories,
        port=port_strategy,
        protocol=protocol_strategy,
    )
    @settings(max_examples=100)
    def test_resolved_result_is_served(
        self,
        domain: str,
        category: ServiceCategory,
        port: int,
        protocol,
    ) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        tree.resolve(domain, 443, "tcp")
        classifier.complete(domain, category)

        assert tree.resolve(domain, port, protocol) == category
        assert classifier.requests == [domain]

    def test_result_entry_covers_subdomains_only(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        tree.resolve("y.com", 443, "tcp")
        classifier.complete("y.com", ServiceCategory.STREAMING_VIDEO)

        assert tree.resolve("www.y.com", 443, "tcp") == ServiceCategory.STREAMING_VIDEO
        assert tree.resolve("other.com", 443, "tcp") == ServiceCategory.PENDING

    def test_unclassified_result_allows_retry(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        tree.resolve("z.com", 80, "tcp")
        classifier.complete("z.com", ServiceCategory.UNCLASSIFIED)

        assert tree.resolve("z.com", 80, "tcp", ServiceCategory.PENDING) == ServiceCategory.UNCLASSIFIED
        assert tree.resolve("z.com", 80, "tcp") == ServiceCategory.PENDING
        assert classifier.requests == ["z.com", "z.com"]

    def test_store_write_is_logged(self) -> None:
        logger = EventLogger(output_stream=io.StringIO(), min_level=LogLevel.DEBUG)
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier, logger=logger)

        tree.apply_external_result("y.com", ServiceCategory.GAMING)

        assert logger.entries[-1].message == "External classification stored"
        assert logger.entries[-1].data == {"domain": "y.com", "category": "gaming"}


class TestTotalityProperty:
    """resolve() answers every input without raising."""

    @given(
        domain=st.one_of(st.none(), st.text(max_size=30), st.integers()),
        port=st.one_of(st.integers(), st.text(max_size=6), st.none(), st.booleans()),
        protocol=st.one_of(st.text(max_size=5), st.none(), st.sampled_from(list(TransportProtocol))),
    )
    @settings(max_examples=100)
    def test_resolve_never_raises(self, domain, port, protocol) -> None:
        tree = ClassificationTree(classifier=FakeClassifier())
        tree.load_rules({"gaming": [["", [[27000, 27050]], [[27000, 27050]]]]})

        result = tree.resolve(domain, port, protocol)

        assert isinstance(result, ServiceCategory)

    @pytest.mark.parametrize("port", [None, "abc", -1, 70000, True, 1.5])
    def test_invalid_port_is_unclassified(self, port) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        assert tree.resolve("a.com", port, "tcp") == ServiceCategory.UNCLASSIFIED
        assert classifier.requests == []

    def test_unknown_protocol_is_unclassified(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        assert tree.resolve("a.com", 80, "sctp") == ServiceCategory.UNCLASSIFIED
        assert classifier.requests == []

    def test_coercion_helpers(self) -> None:
        assert coerce_protocol(" UDP ") is TransportProtocol.UDP
        assert coerce_protocol(6) is None
        assert coerce_port("443") == 443
        assert coerce_port(True) is None
        assert coerce_port(1.5) is None


class TestConfigurationProperty:
    """Trees built from configuration load their rule file."""

    def test_from_config_loads_rules(self, tmp_path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"gaming": [["x.com", [[1000, 2000]], []]]}), encoding="utf-8")
        config = SystemConfig(rules=RuleStoreConfig(path=path))

        with ClassificationTree.from_config(config) as tree:
            assert tree.classifier is None
            assert tree.resolve("x.com", 1500, "tcp") == ServiceCategory.GAMING

    def test_from_config_missing_rule_file_raises(self, tmp_path) -> None:
        config = SystemConfig(rules=RuleStoreConfig(path=tmp_path / "missing.json"))

        with pytest.raises(RuleFileError):
            ClassificationTree.from_config(config)

    def test_from_config_starts_simulated_worker(self) -> None:
        config = SystemConfig(external=ExternalClassifierConfig(
            credential="key:secret",
            poll_interval_seconds=0.05,
            simulation_mode=True,
        ))

        with ClassificationTree.from_config(config) as tree:
            assert tree.classifier is not None
            assert tree.classifier.is_running()
            assert tree.resolve("y.com", 443, "tcp") == ServiceCategory.PENDING

        assert not tree.classifier.is_running()

    def test_close_forwards_to_classifier(self) -> None:
        classifier = FakeClassifier()
        tree = ClassificationTree(classifier=classifier)

        tree.close(force=True)
        assert classifier.cancelled

        tree.close()
        assert classifier.stopped

    def test_stats(self) -> None:
        classifier = FakeClassifier()
        store = RuleStore()
        store.load({"gaming": [["x.com"]]})
        tree = ClassificationTree(store=store, classifier=classifier)
        tree.resolve("y.com", 80, "tcp")

        assert tree.stats() == {"domains": 1, "pending": 1, "external_requests": 1}
