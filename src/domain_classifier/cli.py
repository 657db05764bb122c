"""
Command-line interface for the domain classifier system.

This module provides the main CLI entry point with commands for:
- classify: Classify a single (domain, port, protocol) endpoint
- classify-list: Classify endpoints listed in a file
- rules validate: Check a rule file
- self-test: Verify configuration, rule file and service connectivity
- config: Configuration management
"""

import argparse
import asyncio
import json
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import __version__
from .classification_tree import ClassificationTree
from .config import (
    LOG_LEVELS,
    ExternalClassifierConfig,
    LoggingConfig,
    RuleStoreConfig,
    SystemConfig,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
    validate_config,
)
from .enums import LogLevel, ServiceCategory, TransportProtocol
from .event_log import EventLogger
from .exceptions import DomainClassifierError, RuleFileError
from .i18n import get_message
from .rule_store import RuleStore
from .self_test import run_self_test


DEFAULT_CONFIG_PATH = Path.home() / ".domain_classifier" / "config.json"

# Placeholder credential for simulation runs; never sent anywhere
SIMULATION_CREDENTIAL = "simulation:simulation"

POLL_STEP_SECONDS = 0.1


def create_default_config(
    simulation_mode: bool = False,
    language: str = "en",
    rules_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        simulation_mode: Enable a simulated external classifier
        language: Default language for messages
        rules_path: Optional rule file

    Returns:
        SystemConfig with default settings
    """
    external = None
    if simulation_mode:
        external = ExternalClassifierConfig(
            credential=SIMULATION_CREDENTIAL,
            simulation_mode=True,
        )
    return SystemConfig(
        rules=RuleStoreConfig(path=rules_path),
        external=external,
        logging=LoggingConfig(),
        language=language,
    )


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Build the effective configuration for a command.

    A --config file wins over the environment; --rules, --dry-run and
    --language override whatever was loaded.
    """
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
    else:
        config = load_config_from_env(getattr(args, "env_file", None))

    if getattr(args, "rules", None):
        config = replace(config, rules=RuleStoreConfig(path=Path(args.rules)))

    if getattr(args, "dry_run", False):
        if config.external is None:
            external = ExternalClassifierConfig(
                credential=SIMULATION_CREDENTIAL,
                simulation_mode=True,
            )
        else:
            external = replace(config.external, simulation_mode=True)
        config = replace(config, external=external)

    if getattr(args, "language", None):
        config = replace(config, language=args.language)

    return config


def create_logger(config: SystemConfig, verbose: bool = False) -> EventLogger:
    """Create the event logger for a CLI run; --verbose lowers the level to debug."""
    if verbose:
        level = LogLevel.DEBUG
    elif config.logging.level in LOG_LEVELS:
        level = LogLevel(config.logging.level)
    else:
        level = LogLevel.INFO
    output_format = config.logging.output_format
    if output_format not in EventLogger.OUTPUT_FORMATS:
        output_format = "text"
    return EventLogger(output_format=output_format, min_level=level)


def build_tree(config: SystemConfig, logger: EventLogger) -> Optional[ClassificationTree]:
    """Create a classification tree, reporting startup failures on stderr."""
    language = config.language
    try:
        return ClassificationTree.from_config(config, logger=logger)
    except RuleFileError as e:
        print(get_message("rules.unreadable", language, message=e.message), file=sys.stderr)
    except DomainClassifierError as e:
        print(f"Error: {e.message}", file=sys.stderr)
    return None


def wait_for_result(
    tree: ClassificationTree,
    domain: str,
    port: int,
    protocol: TransportProtocol,
    category: ServiceCategory,
    wait_seconds: float,
) -> ServiceCategory:
    """
    Re-poll a pending endpoint until it settles or the wait expires.

    Polls pass PENDING as the previous status so a failed external lookup
    settles on UNCLASSIFIED instead of being queued again.
    """
    deadline = time.monotonic() + wait_seconds
    while category is ServiceCategory.PENDING and time.monotonic() < deadline:
        time.sleep(POLL_STEP_SECONDS)
        category = tree.resolve(domain, port, protocol, previous_status=category)
    return category


def category_label(category: ServiceCategory, language: str) -> str:
    return get_message(f"category.{category.value}", language)


def classify_endpoint(
    domain: str,
    port: int,
    protocol: TransportProtocol,
    config: SystemConfig,
    wait_seconds: float = 0.0,
    verbose: bool = False,
) -> int:
    """
    Classify a single endpoint and print the result.

    Returns:
        Exit code (0 when a real category was found, 1 otherwise)
    """
    language = config.language

    if config.external is not None and config.external.simulation_mode:
        print(get_message("simulation.enabled", language))

    logger = create_logger(config, verbose)
    tree = build_tree(config, logger)
    if tree is None:
        return 1

    with tree:
        print(get_message(
            "cli.classifying", language,
            domain=domain or "*", port=port, protocol=protocol.value,
        ))
        category = tree.resolve(domain, port, protocol)
        if category is ServiceCategory.PENDING and wait_seconds > 0:
            print(get_message("cli.waiting", language, seconds=wait_seconds))
            category = wait_for_result(tree, domain, port, protocol, category, wait_seconds)

        print(get_message("cli.result", language, category=category_label(category, language)))

        if verbose:
            stats = tree.stats()
            print(f"  Rule domains: {stats['domains']}")
            print(f"  External requests: {stats['external_requests']}")

    return 0 if category.is_resolved else 1


def parse_endpoint_line(line: str) -> Optional[tuple[str, int, TransportProtocol]]:
    """
    Parse 'domain port [protocol]'.

    Returns:
        The endpoint, or None if the line is malformed
    """
    parts = line.split()
    if len(parts) not in (2, 3):
        return None
    domain, port_text = parts[0], parts[1]
    if not port_text.isdecimal():
        return None
    protocol_text = parts[2].lower() if len(parts) == 3 else TransportProtocol.TCP.value
    try:
        protocol = TransportProtocol(protocol_text)
    except ValueError:
        return None
    # '-' stands for "no domain" (port-only rules)
    if domain == "-":
        domain = ""
    return domain, int(port_text), protocol


def classify_endpoint_list(
    endpoints_file: Path,
    config: SystemConfig,
    output_file: Optional[Path] = None,
    wait_seconds: float = 0.0,
    verbose: bool = False,
) -> int:
    """
    Classify every endpoint listed in a file.

    Returns:
        Exit code (0 if at least one endpoint was classified, 1 otherwise)
    """
    language = config.language

    try:
        lines = endpoints_file.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        print(f"Error: Could not read {endpoints_file}: {e}", file=sys.stderr)
        return 1

    endpoints = []
    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        endpoint = parse_endpoint_line(line)
        if endpoint is None:
            print(get_message("cli.invalid_line", language, line=line_number, text=line), file=sys.stderr)
            continue
        endpoints.append(endpoint)

    if config.external is not None and config.external.simulation_mode:
        print(get_message("simulation.enabled", language))

    logger = create_logger(config, verbose)
    tree = build_tree(config, logger)
    if tree is None:
        return 1

    with tree:
        categories = [tree.resolve(*endpoint) for endpoint in endpoints]

        if wait_seconds > 0 and ServiceCategory.PENDING in categories:
            print(get_message("cli.waiting", language, seconds=wait_seconds))
            deadline = time.monotonic() + wait_seconds
            while ServiceCategory.PENDING in categories and time.monotonic() < deadline:
                time.sleep(POLL_STEP_SECONDS)
                categories = [
                    tree.resolve(*endpoint, previous_status=category)
                    if category is ServiceCategory.PENDING else category
                    for endpoint, category in zip(endpoints, categories)
                ]

    results = []
    for (domain, port, protocol), category in zip(endpoints, categories):
        print(f"  {domain or '*'} {port}/{protocol.value}: {category_label(category, language)}")
        results.append({
            "domain": domain,
            "port": port,
            "protocol": protocol.value,
            "category": category.value,
        })

    resolved = sum(1 for category in categories if category.is_resolved)
    print(get_message("cli.summary", language, resolved=resolved, total=len(results)))

    if output_file is not None:
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(output_file, "w", encoding="utf-8") as f:
                json.dump(results, f, indent=2, ensure_ascii=False)
        except OSError as e:
            print(f"Error: Could not write results: {e}", file=sys.stderr)
            return 1

    return 0 if resolved > 0 else 1


def cmd_classify(args: argparse.Namespace) -> int:
    """Handle the 'classify' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    if not args.port.isdecimal():
        print(f"Error: Invalid port: {args.port}", file=sys.stderr)
        return 1

    domain = "" if args.domain == "-" else args.domain
    return classify_endpoint(
        domain=domain,
        port=int(args.port),
        protocol=TransportProtocol(args.protocol),
        config=config,
        wait_seconds=args.wait,
        verbose=args.verbose,
    )


def cmd_classify_list(args: argparse.Namespace) -> int:
    """Handle the 'classify-list' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    output_file = Path(args.output) if args.output else None

    return classify_endpoint_list(
        endpoints_file=Path(args.file),
        config=config,
        output_file=output_file,
        wait_seconds=args.wait,
        verbose=args.verbose,
    )


def cmd_rules(args: argparse.Namespace) -> int:
    """Handle the 'rules' command."""
    language = args.language or "en"
    store = RuleStore()

    try:
        result = store.load_file(Path(args.file))
    except RuleFileError as e:
        print(get_message("rules.unreadable", language, message=e.message), file=sys.stderr)
        return 1

    if not result.success:
        print(get_message(
            "rules.failed", language,
            code=result.error.code, message=result.error.message,
        ), file=sys.stderr)
        return 1

    print(get_message(
        "rules.loaded", language,
        domains=result.domain_count, ranges=result.range_count,
    ))
    return 0


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    result = asyncio.run(run_self_test(
        config=config,
        print_output=True,
        language=config.language,
    ))

    return 0 if result.success else 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Language: {config.language}")
        print(f"  Rule file: {config.rules.path or '-'}")
        if config.external is None:
            print("  External classifier: disabled")
        else:
            print(f"  External classifier: {config.external.base_url}")
            print(f"  Simulation mode: {config.external.simulation_mode}")
            print(f"  Poll interval: {config.external.poll_interval_seconds}s")
            print(f"  CPU set: {config.external.cpu_set or 'any'}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Log format: {config.logging.output_format}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config(language=args.language or "en")
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        errors = validate_config(config)
        if errors:
            for error in errors:
                print(f"  ✗ {error}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file (used when no --config is given)",
    )
    parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        default=None,
        help="Output language (default: from configuration)",
    )


def _add_classify_options(parser: argparse.ArgumentParser) -> None:
    _add_common_options(parser)
    parser.add_argument(
        "--rules", "-r",
        help="Path to rule file (overrides configuration)",
    )
    parser.add_argument(
        "--wait", "-w",
        type=float,
        default=0.0,
        help="Seconds to wait for external classification (default: 0)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no requests to the categorization service",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-classifier",
        description="Classify traffic endpoints by domain, port and protocol",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'classify' command
    classify_parser = subparsers.add_parser(
        "classify",
        help="Classify a single endpoint",
    )
    classify_parser.add_argument(
        "domain",
        help="Domain or IP address ('-' for port-only rules)",
    )
    classify_parser.add_argument(
        "port",
        help="Destination port",
    )
    classify_parser.add_argument(
        "--protocol", "-p",
        choices=[protocol.value for protocol in TransportProtocol],
        default=TransportProtocol.TCP.value,
        help="Transport protocol (default: tcp)",
    )
    _add_classify_options(classify_parser)
    classify_parser.set_defaults(func=cmd_classify)

    # 'classify-list' command
    classify_list_parser = subparsers.add_parser(
        "classify-list",
        help="Classify endpoints from a file",
    )
    classify_list_parser.add_argument(
        "file",
        help="File with one 'domain port [protocol]' per line",
    )
    classify_list_parser.add_argument(
        "--output", "-o",
        help="Path to write results as JSON",
    )
    _add_classify_options(classify_list_parser)
    classify_list_parser.set_defaults(func=cmd_classify_list)

    # 'rules' command
    rules_parser = subparsers.add_parser(
        "rules",
        help="Rule file management",
    )
    rules_parser.add_argument(
        "action",
        choices=["validate"],
        help="Rule file action",
    )
    rules_parser.add_argument(
        "file",
        help="Path to rule file",
    )
    rules_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        default="en",
        help="Output language (default: en)",
    )
    rules_parser.set_defaults(func=cmd_rules)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        default="en",
        help="Default language for new configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    # 'self-test' command
    self_test_parser = subparsers.add_parser(
        "self-test",
        help="Run startup self-test to verify configuration and connectivity",
    )
    _add_common_options(self_test_parser)
    self_test_parser.set_defaults(func=cmd_self_test)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
