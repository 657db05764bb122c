"""
Domain Classifier - traffic endpoint classification by domain, port and protocol.

This package maps (domain, port, protocol) endpoints to service categories
using a static JSON rule set, and resolves unknown domains asynchronously
through an external web categorization service.
"""

__version__ = "0.1.0"
__author__ = "Domain Classifier Team"

from domain_classifier.exceptions import (
    DomainClassifierError,
    RuleFileError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    WorkerError,
)
from domain_classifier.enums import (
    ServiceCategory,
    TransportProtocol,
    LogLevel,
    RuleFileErrorCode,
    CategorizationErrorCode,
    CategorizationStatus,
)
from domain_classifier.models import (
    PortRange,
    ClassifiedDomain,
    CategoryCandidate,
    RuleLoadResult,
)
from domain_classifier.config import (
    RuleStoreConfig,
    ExternalClassifierConfig,
    LoggingConfig,
    SystemConfig,
    validate_config,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
)
from domain_classifier.event_log import (
    EventLogger,
    LogEntry,
)
from domain_classifier.rule_store import (
    RuleStore,
    category_from_rule_name,
)
from domain_classifier.pending_tracker import (
    PendingRequestTracker,
)
from domain_classifier.categorization_client import (
    CategorizationClient,
    CategorizationResponse,
    CategorizationError,
    parse_categorization_reply,
    select_best_category,
)
from domain_classifier.affinity_worker import (
    AffinityWorker,
    apply_cpu_affinity,
    spawn_per_core,
)
from domain_classifier.classifier_worker import (
    ExternalClassifierWorker,
)
from domain_classifier.classification_tree import (
    ClassificationTree,
)
from domain_classifier.i18n import (
    get_message,
    get_missing_translations,
    TRANSLATIONS,
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
)
from domain_classifier.self_test import (
    SelfTest,
    SelfTestResult,
    EndpointTestResult,
    RuleFileCheckResult,
    ConfigValidationResult,
    run_self_test,
)
from domain_classifier.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
)

__all__ = [
    # Exceptions
    "DomainClassifierError",
    "RuleFileError",
    "ConfigurationError",
    "NetworkError",
    "ProtocolError",
    "WorkerError",
    # Enums
    "ServiceCategory",
    "TransportProtocol",
    "LogLevel",
    "RuleFileErrorCode",
    "CategorizationErrorCode",
    "CategorizationStatus",
    # Models
    "PortRange",
    "ClassifiedDomain",
    "CategoryCandidate",
    "RuleLoadResult",
    # Configuration
    "RuleStoreConfig",
    "ExternalClassifierConfig",
    "LoggingConfig",
    "SystemConfig",
    "validate_config",
    "load_config_from_env",
    "load_config_from_file",
    "save_config_to_file",
    # Event Logger
    "EventLogger",
    "LogEntry",
    # Rule Store
    "RuleStore",
    "category_from_rule_name",
    # Pending Requests
    "PendingRequestTracker",
    # Categorization Client
    "CategorizationClient",
    "CategorizationResponse",
    "CategorizationError",
    "parse_categorization_reply",
    "select_best_category",
    # Workers
    "AffinityWorker",
    "apply_cpu_affinity",
    "spawn_per_core",
    "ExternalClassifierWorker",
    # Classification Tree
    "ClassificationTree",
    # i18n
    "get_message",
    "get_missing_translations",
    "TRANSLATIONS",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # Self-Test
    "SelfTest",
    "SelfTestResult",
    "EndpointTestResult",
    "RuleFileCheckResult",
    "ConfigValidationResult",
    "run_self_test",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
]
