"""
Internationalization (i18n) module for the domain classifier system.

Provides translations for all user-facing CLI messages in German (de) and
English (en).
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Classification results
    "category.small": {"de": "Kleinverkehr", "en": "Small"},
    "category.unclassified": {"de": "Nicht klassifiziert", "en": "Unclassified"},
    "category.gaming": {"de": "Gaming", "en": "Gaming"},
    "category.streaming_tcp": {"de": "Streaming (TCP)", "en": "Streaming (TCP)"},
    "category.streaming_udp": {"de": "Streaming (UDP)", "en": "Streaming (UDP)"},
    "category.streaming_video": {"de": "Video-Streaming", "en": "Video streaming"},
    "category.browsing": {"de": "Surfen", "en": "Browsing"},
    "category.live_streaming_udp": {"de": "Live-Streaming", "en": "Live streaming"},
    "category.upload_tcp": {"de": "Upload (TCP)", "en": "Upload (TCP)"},
    "category.upload_udp": {"de": "Upload (UDP)", "en": "Upload (UDP)"},
    "category.untrusted": {"de": "Nicht vertrauenswürdig", "en": "Untrusted"},
    "category.undefined": {"de": "Undefiniert", "en": "Undefined"},
    "category.pending": {"de": "Ausstehend", "en": "Pending"},

    # CLI messages
    "cli.classifying": {
        "de": "Klassifiziere {domain} Port {port} über {protocol}...",
        "en": "Classifying {domain} port {port} over {protocol}...",
    },
    "cli.result": {
        "de": "Ergebnis: {category}",
        "en": "Result: {category}",
    },
    "cli.waiting": {
        "de": "Warte auf externe Klassifizierung ({seconds:.0f}s)...",
        "en": "Waiting for external classification ({seconds:.0f}s)...",
    },
    "cli.summary": {
        "de": "Zusammenfassung: {resolved}/{total} Endpunkt(e) klassifiziert",
        "en": "Summary: {resolved}/{total} endpoint(s) classified",
    },
    "cli.invalid_line": {
        "de": "Zeile {line} ignoriert: {text}",
        "en": "Line {line} skipped: {text}",
    },

    # Rule files
    "rules.loaded": {
        "de": "Regeldatei geladen: {domains} Domain(s), {ranges} Portbereich(e)",
        "en": "Rule file loaded: {domains} domain(s), {ranges} port range(s)",
    },
    "rules.failed": {
        "de": "Regeldatei ungültig ({code}): {message}",
        "en": "Rule file invalid ({code}): {message}",
    },
    "rules.unreadable": {
        "de": "Regeldatei kann nicht gelesen werden: {message}",
        "en": "Cannot read rule file: {message}",
    },

    # Simulation mode
    "simulation.enabled": {
        "de": "Simulationsmodus aktiv: keine Anfragen an den Kategorisierungsdienst",
        "en": "Simulation mode enabled: no requests to the categorization service",
    },

    # Self-test
    "selftest.running": {
        "de": "Selbsttest wird ausgeführt...",
        "en": "Running self-test...",
    },
    "selftest.config_ok": {
        "de": "Konfiguration gültig",
        "en": "Configuration valid",
    },
    "selftest.config_error": {
        "de": "Konfigurationsfehler: {error}",
        "en": "Configuration error: {error}",
    },
    "selftest.endpoint_ok": {
        "de": "Dienst erreichbar: {endpoint} ({time:.0f}ms)",
        "en": "Service reachable: {endpoint} ({time:.0f}ms)",
    },
    "selftest.endpoint_failed": {
        "de": "Dienst nicht erreichbar: {endpoint} - {error}",
        "en": "Service unreachable: {endpoint} - {error}",
    },
    "selftest.endpoint_skipped": {
        "de": "Verbindungstest übersprungen",
        "en": "Connectivity check skipped",
    },
    "selftest.passed": {
        "de": "Selbsttest bestanden",
        "en": "Self-test passed",
    },
    "selftest.failed": {
        "de": "Selbsttest fehlgeschlagen",
        "en": "Self-test failed",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'cli.result')
        language: Language code ('de' or 'en'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.

    Examples:
        >>> get_message('category.gaming', 'en')
        'Gaming'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except (KeyError, ValueError):
            pass

    return message


def get_missing_translations(language: str) -> set[str]:
    """
    Get all message keys that are missing translations for a language.

    Args:
        language: The language code to check

    Returns:
        Set of message keys missing translations for the specified language.
    """
    return {
        key for key, translations in TRANSLATIONS.items()
        if language not in translations
    }
