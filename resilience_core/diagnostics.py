"""Per-kind error diagnosis and Markdown diagnostic reports."""
from __future__ import annotations

import json
import platform
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .i18n import Translator
from .models.errors import ErrorKind, ErrorRecord

_DIAGNOSES: Dict[ErrorKind, Tuple[str, Tuple[str, ...], str]] = {
    ErrorKind.NETWORK: (
        "diagnosis.network_issue",
        ("check_internet", "disable_vpn", "check_firewall", "try_different_network"),
        "high",
    ),
    ErrorKind.CLIPBOARD: (
        "diagnosis.clipboard_issue",
        ("enable_clipboard_permission", "update_browser", "try_different_browser", "manual_copy"),
        "low",
    ),
    ErrorKind.DOM: (
        "diagnosis.page_structure_changed",
        ("refresh_page", "clear_browser_cache", "disable_other_extensions", "update_extension"),
        "medium",
    ),
    ErrorKind.MEMORY: (
        "diagnosis.memory_issue",
        ("close_tabs", "restart_browser", "increase_memory", "disable_extensions"),
        "high",
    ),
    ErrorKind.PERMISSION: (
        "diagnosis.permission_issue",
        ("grant_permissions", "check_site_settings", "reset_permissions", "allow_in_incognito"),
        "low",
    ),
}

_UNKNOWN = ("diagnosis.unknown_issue", ("restart_browser", "update_extension", "contact_support"), "medium")


@dataclass
class Diagnosis:
    diagnosis: str
    solutions: List[str] = field(default_factory=list)
    severity: str = "medium"
    user_friendly: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "diagnosis": self.diagnosis,
            "solutions": list(self.solutions),
            "severity": self.severity,
            "user_friendly": self.user_friendly,
        }


class ErrorDiagnostic:
    """Explains a failure in user terms and lists concrete next steps."""

    def __init__(self, translator: Optional[Translator] = None) -> None:
        self.translator = translator or Translator()

    def diagnose(self, record: ErrorRecord) -> Diagnosis:
        key, solutions, severity = _DIAGNOSES.get(record.kind, _UNKNOWN)
        if record.kind is ErrorKind.NETWORK and "timeout" in record.message.lower():
            severity = "medium"
        return Diagnosis(
            diagnosis=self.translator.t(key),
            solutions=[self.translator.t(f"solution.{name}") for name in solutions],
            severity=severity,
            user_friendly=record.kind in _DIAGNOSES,
        )

    def generate_report(self, record: ErrorRecord) -> str:
        """Render a Markdown report with the diagnosis and technical details."""
        diagnosis = self.diagnose(record)
        solutions = "\n".join(f"{i}. {s}" for i, s in enumerate(diagnosis.solutions, start=1))
        lines = [
            "## Error Diagnostic Report",
            "",
            f"**Error Type:** {record.kind.value}",
            f"**Severity:** {record.severity.value}",
            f"**Time:** {datetime.fromtimestamp(record.timestamp).isoformat()}",
            "",
            f"**Diagnosis:** {diagnosis.diagnosis}",
            "",
            "**Recommended Solutions:**",
            solutions,
            "",
            "**Technical Details:**",
            f"- Message: {record.message}",
            f"- Context: {json.dumps(record.context, indent=2, default=str)}",
            f"- Recoverable: {str(record.recoverable).lower()}",
            f"- Platform: {platform.platform()} (Python {sys.version.split()[0]})",
        ]
        stack = record.metadata.get("original_traceback")
        if stack:
            lines.extend(["", "**Stack Trace:**", "```", stack.rstrip(), "```"])
        return "\n".join(lines)
