"""
Classification Tree for the domain classifier system.

Combines the static rule store with the optional external classifier:
lookups that the rules cannot answer are queued for external resolution and
reported as PENDING; once the worker reports a category, later lookups of
that exact domain resolve from the store without another request.

Callers poll: a PENDING answer means "ask again later", passing PENDING as
previous_status so a failed external lookup settles on UNCLASSIFIED instead
of being queued again.
"""

from pathlib import Path
from typing import Any, Optional, Union

from .classifier_worker import ExternalClassifierWorker
from .config import SystemConfig
from .domain_key import lookup_key
from .enums import LogLevel, ServiceCategory, TransportProtocol
from .event_log import EventLogger
from .models import MAX_PORT, MIN_PORT, RuleLoadResult
from .rule_store import RuleStore


def coerce_protocol(protocol: Any) -> Optional[TransportProtocol]:
    """Accept a TransportProtocol or its name; None if unrecognized."""
    if isinstance(protocol, TransportProtocol):
        return protocol
    if isinstance(protocol, str):
        try:
            return TransportProtocol(protocol.strip().lower())
        except ValueError:
            return None
    return None


def coerce_port(port: Any) -> Optional[int]:
    """Accept an int or digit string within the port range; None otherwise."""
    if isinstance(port, bool):
        return None
    if isinstance(port, str) and port.strip().isdecimal():
        port = int(port.strip())
    if isinstance(port, int) and MIN_PORT <= port <= MAX_PORT:
        return port
    return None


class ClassificationTree:
    """
    Resolves (domain, port, protocol) endpoints to service categories.

    resolve() never blocks on network I/O and never raises.
    """

    COMPONENT = "classification_tree"

    def __init__(
        self,
        store: Optional[RuleStore] = None,
        classifier: Optional[ExternalClassifierWorker] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize the tree.

        Args:
            store: Rule store; an empty one is created if omitted
            classifier: Optional external classifier worker
            logger: Optional event logger
        """
        self._store = store or RuleStore(logger=logger)
        self._classifier = classifier
        self._logger = logger
        if classifier is not None:
            classifier.register_result_callback(self.apply_external_result)

    @classmethod
    def from_config(
        cls,
        config: SystemConfig,
        logger: Optional[EventLogger] = None,
    ) -> "ClassificationTree":
        """
        Build a tree from configuration.

        Loads the configured rule file and starts the external classifier
        when one is configured.

        Raises:
            RuleFileError: If the rule file cannot be opened
            ConfigurationError: If the external classifier settings are invalid
            WorkerError: If the worker cannot be started
        """
        store = RuleStore(logger=logger)
        if config.rules.path is not None:
            store.load_file(config.rules.path)

        classifier = None
        if config.external is not None:
            classifier = ExternalClassifierWorker(config.external, logger=logger)

        return cls(store=store, classifier=classifier, logger=logger)

    def __enter__(self) -> "ClassificationTree":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def store(self) -> RuleStore:
        return self._store

    @property
    def classifier(self) -> Optional[ExternalClassifierWorker]:
        return self._classifier

    def load_rules(self, document: Any) -> RuleLoadResult:
        return self._store.load(document)

    def load_rules_file(self, path: Union[str, Path]) -> RuleLoadResult:
        return self._store.load_file(path)

    def resolve(
        self,
        domain: Optional[str],
        port: Any,
        protocol: Any,
        previous_status: Optional[ServiceCategory] = None,
    ) -> ServiceCategory:
        """
        Classify an endpoint.

        Args:
            domain: Hostname, IP literal, or empty for port-only rules
            port: Destination port
            protocol: TransportProtocol or 'tcp'/'udp'
            previous_status: The caller's last answer for this endpoint

        Returns:
            The category; PENDING while an external lookup is outstanding;
            UNCLASSIFIED when nothing applies
        """
        key = lookup_key(domain)

        if self._classifier is not None and key and self._classifier.is_pending(key):
            return ServiceCategory.PENDING

        port_number = coerce_port(port)
        transport = coerce_protocol(protocol)
        if port_number is None or transport is None:
            return ServiceCategory.UNCLASSIFIED

        category = self._store.match(key, port_number, transport)
        if category is not ServiceCategory.UNCLASSIFIED:
            return category

        if (
            self._classifier is not None
            and key
            and self._classifier.is_accepting()
            and previous_status is not ServiceCategory.PENDING
        ):
            if self._classifier.add_request(key):
                self._log(LogLevel.DEBUG, "Queued for external classification", {"domain": key})
            return ServiceCategory.PENDING

        return ServiceCategory.UNCLASSIFIED

    def apply_external_result(self, domain: str, category: ServiceCategory) -> None:
        """
        Record a category reported by the external classifier.

        Unresolved results leave no trace, so the domain is queried afresh
        on its next lookup.
        """
        if self._store.apply_external_result(domain, category):
            self._log(
                LogLevel.INFO,
                "External classification stored",
                {"domain": domain, "category": category.value},
            )
        else:
            self._log(
                LogLevel.DEBUG,
                "External classification not stored",
                {"domain": domain, "category": category.value},
            )

    def stats(self) -> dict:
        """Counts for diagnostics."""
        stats = {
            "domains": len(self._store),
            "pending": 0,
            "external_requests": 0,
        }
        if self._classifier is not None:
            stats["pending"] = len(self._classifier.tracker)
            stats["external_requests"] = self._classifier.requests_sent
        return stats

    def close(self, force: bool = False, timeout: Optional[float] = 5.0) -> None:
        """
        Stop the external classifier.

        Args:
            force: Abort an outstanding request instead of letting it finish
            timeout: Seconds to wait for the worker thread
        """
        if self._classifier is None:
            return
        if force:
            self._classifier.cancel(timeout)
        else:
            self._classifier.stop(timeout)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, self.COMPONENT, message, data)
