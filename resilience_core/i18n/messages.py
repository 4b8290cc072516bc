"""User-facing message catalog with locale fallback and {{param}} interpolation."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

FALLBACK_LOCALE = "en"

EN_MESSAGES: Dict[str, str] = {
    # Error descriptions by kind
    "error.network": "Network connection error, please check your network settings",
    "error.permission": "Permission denied, the extension cannot access this feature",
    "error.clipboard": "Copy function unavailable, please check browser permissions",
    "error.parsing": "Tweet parsing failed, please try refreshing the page",
    "error.formatting": "Content could not be formatted",
    "error.storage": "Local storage is full or unavailable",
    "error.dom": "Twitter page structure changed, the extension is adapting",
    "error.validation": "The data did not pass validation",
    "error.timeout": "The operation timed out",
    "error.memory": "The browser is running low on memory",
    "error.screenshot": "The screenshot could not be created",
    "error.unknown": "The extension encountered an unknown error, please try refreshing the page",
    # Recovery outcomes
    "error.max_retries_exceeded": "Automatic recovery gave up after repeated attempts",
    "error.no_recovery_strategy": "No automatic recovery is available for this error",
    "error.recovery_failed": "Automatic recovery failed",
    "error.network_offline": "You appear to be offline",
    "error.permission_prompt_required": "Please allow clipboard access when prompted",
    "error.permission_denied": "Clipboard access was denied",
    "error.permission_check_failed": "Clipboard permission could not be checked",
    "error.elements_still_not_found": "Tweet content is still not available on the page",
    "error.no_storage_to_clean": "There was no stale data to clean up",
    "error.storage_cleanup_failed": "Storage cleanup failed",
    "error.requires_page_refresh": "Please reload the page to continue",
    "error.batched": "{{count}} occurrences: {{message}}",
    # Suggestions
    "suggestion.check_connection": "Check your internet connection and try again",
    "suggestion.grant_permission": "Grant the requested permission in the browser settings",
    "suggestion.try_manual_copy": "Select the text and copy it manually",
    "suggestion.refresh_page": "Refresh the page and try again",
    "suggestion.try_again": "Please try again",
    "suggestion.close_tabs": "Close unused tabs to free memory",
    "suggestion.clear_cache": "Clear the extension cache",
    "suggestion.update_browser": "Update your browser to the latest version",
    "suggestion.contact_support": "Contact support if the problem persists",
    # Success notices
    "success.error_recovered": "Recovered from a {{errorType}} error ({{strategy}})",
    "success.network_recovered": "Network connection restored",
    "success.permission_granted": "Clipboard permission granted",
    "success.elements_found": "Tweet content found",
    "success.storage_cleaned": "Removed {{count}} stale storage entries",
    "success.memory_cleaned": "Memory cleanup completed",
    "success.operation_completed": "Done",
    "success.tweet_copied": "Copied successfully!",
    # Severity titles
    "severity.debug": "Debug",
    "severity.info": "Info",
    "severity.warning": "Warning",
    "severity.error": "Error",
    "severity.critical": "Critical error",
    "severity.fatal": "Fatal error",
    # Actions
    "retry": "Retry",
    "action.copy_error": "Copy details",
    "action.report": "Report",
    # Diagnostics
    "diagnosis.network_issue": "The extension could not reach the network",
    "diagnosis.clipboard_issue": "The clipboard is not accessible",
    "diagnosis.page_structure_changed": "The page structure differs from what the extension expects",
    "diagnosis.memory_issue": "The browser is under memory pressure",
    "diagnosis.permission_issue": "A required permission is missing",
    "diagnosis.unknown_issue": "The cause of the error could not be determined",
    "solution.check_internet": "Check your internet connection",
    "solution.disable_vpn": "Temporarily disable VPN or proxy",
    "solution.check_firewall": "Check firewall settings",
    "solution.try_different_network": "Try a different network",
    "solution.enable_clipboard_permission": "Enable clipboard permission for the site",
    "solution.update_browser": "Update your browser",
    "solution.try_different_browser": "Try a different browser",
    "solution.manual_copy": "Copy the content manually",
    "solution.refresh_page": "Refresh the page",
    "solution.clear_browser_cache": "Clear the browser cache",
    "solution.disable_other_extensions": "Disable other extensions",
    "solution.update_extension": "Update the extension",
    "solution.close_tabs": "Close unused tabs",
    "solution.restart_browser": "Restart the browser",
    "solution.increase_memory": "Free up system memory",
    "solution.disable_extensions": "Disable memory-heavy extensions",
    "solution.grant_permissions": "Grant the requested permissions",
    "solution.check_site_settings": "Check the site settings",
    "solution.reset_permissions": "Reset site permissions",
    "solution.allow_in_incognito": "Allow the extension in incognito mode",
    "solution.contact_support": "Contact support",
}


class Translator:
    """Looks up localized strings by dotted key.

    Lookups fall back to English, and a missing key returns the key itself so a
    notification is never blocked on a catalog gap.
    """

    def __init__(self, locale: str = FALLBACK_LOCALE) -> None:
        self._catalogs: Dict[str, Dict[str, str]] = {FALLBACK_LOCALE: dict(EN_MESSAGES)}
        self.locale = locale

    def add_locale(self, locale: str, catalog: Mapping[str, str]) -> None:
        """Register or extend the catalog for a locale."""
        self._catalogs.setdefault(locale, {}).update(catalog)

    def set_locale(self, locale: str) -> bool:
        if locale not in self._catalogs:
            logger.warning(f"Unsupported locale: {locale}")
            return False
        self.locale = locale
        return True

    def has(self, key: str) -> bool:
        return any(key in catalog for catalog in self._catalogs.values())

    def t(self, key: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Translate a key, interpolating ``{{name}}`` placeholders from params."""
        text = self._catalogs.get(self.locale, {}).get(key)
        if text is None and self.locale != FALLBACK_LOCALE:
            text = self._catalogs[FALLBACK_LOCALE].get(key)
        if text is None:
            logger.warning(f"Translation missing for key: {key}")
            return key
        if params:
            text = _interpolate(text, params)
        return text


def _interpolate(text: str, params: Mapping[str, Any]) -> str:
    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        return str(params[name]) if name in params else match.group(0)

    return _PLACEHOLDER.sub(_replace, text)
