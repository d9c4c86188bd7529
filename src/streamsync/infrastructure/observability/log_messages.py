"""Structured log message templates for the sync subsystem.

Hey future me - instead of "sync failed" you get:

    ❌ Content Sync Failed
    ├─ Run: 5f0c...
    ├─ Reason: All catalog sections failed
    ├─ Attempt: 2/3
    └─ 💡 Retry in 60s

Principles (same as everywhere else in the app):
1. Icon first for quick scanning (❌ error, ⚠️ partial, ✅ success, ⏸️ deferred)
2. What happened
3. Context (run id, identity, counts)
4. Hint with the next automatic step
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class LogTemplate:
    """A reusable log message template with placeholders."""

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Args:
            **kwargs: Values to fill into template placeholders

        Returns:
            Multi-line log message with icon, title, tree-formatted fields and hint
        """
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value_template) in enumerate(field_items):
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"
            try:
                value = value_template.format(**kwargs)
            except KeyError as e:
                value = f"<missing: {e}>"
            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            try:
                hint_text = self.hint.format(**kwargs)
            except KeyError as e:
                hint_text = f"<missing: {e}>"
            lines.append(f"└─ 💡 {hint_text}")

        return "\n".join(lines)


def _literal(value: Any) -> str:
    # Values are inserted verbatim - escape braces so format() leaves them alone
    return str(value).replace("{", "{{").replace("}", "}}")


class LogMessages:
    """Standardized log message templates for scheduler and worker."""

    # === Worker Lifecycle ===

    @staticmethod
    def worker_started(
        worker: str,
        interval: float | None = None,
        config: dict[str, Any] | None = None,
    ) -> str:
        """Format a worker start message.

        Args:
            worker: Worker name
            interval: Loop interval in seconds (if applicable)
            config: Additional config to display
        """
        fields: dict[str, str] = {}
        if interval:
            fields["Interval"] = f"{interval:g}s"
        if config:
            for key, value in config.items():
                fields[key] = _literal(value)

        return LogTemplate(icon="✅", title=f"{worker} Started", fields=fields).format()

    @staticmethod
    def worker_failed(worker: str, error: str, will_retry: bool = True) -> str:
        """Format a worker loop failure message."""
        status = "Will retry next cycle" if will_retry else "Stopped"
        return LogTemplate(
            icon="❌",
            title=f"{worker} Failed",
            fields={"Reason": _literal(error), "Status": status},
        ).format()

    # === Sync Runs ===

    @staticmethod
    def sync_completed(
        run_id: str,
        identity: str,
        charts: int,
        playlists: int,
        new_releases: int,
        refreshed: int,
        evicted: int,
        failures: int = 0,
    ) -> str:
        """Format a sync run completion message (partial failures included)."""
        icon = "✅" if failures == 0 else "⚠️"
        fields = {
            "Run": _literal(run_id),
            "Job": _literal(identity),
            "Charts": str(charts),
            "Playlists": str(playlists),
            "New Releases": str(new_releases),
            "Cache": f"{refreshed} refreshed, {evicted} evicted",
        }
        if failures:
            fields["Recovered Failures"] = str(failures)
        return LogTemplate(icon=icon, title="Content Sync Complete", fields=fields).format()

    @staticmethod
    def sync_failed(
        run_id: str,
        identity: str,
        error: str,
        attempt: int,
        max_retries: int,
        retry_in: str | None,
    ) -> str:
        """Format a total sync failure message with the retry decision."""
        hint = f"Retry in {retry_in}" if retry_in else (
            "Retries exhausted - waiting for reschedule or manual sync"
        )
        return LogTemplate(
            icon="❌",
            title="Content Sync Failed",
            fields={
                "Run": _literal(run_id),
                "Job": _literal(identity),
                "Reason": _literal(error),
                "Attempt": f"{attempt}/{max_retries}",
            },
            hint=_literal(hint),
        ).format()

    @staticmethod
    def admission_deferred(identity: str, constraints: dict[str, Any]) -> str:
        """Format a "constraints unmet, job stays enqueued" message."""
        fields = {"Job": _literal(identity)}
        for key, value in constraints.items():
            fields[key.replace("_", " ").title()] = _literal(value)
        return LogTemplate(
            icon="⏸️",
            title="Sync Admission Deferred",
            fields=fields,
            hint="Job stays enqueued and is re-evaluated next cycle",
        ).format()

    @staticmethod
    def job_registered(identity: str, state: str, spec: dict[str, Any]) -> str:
        """Format a job (re)registration message."""
        fields = {"Job": _literal(identity), "State": _literal(state)}
        for key, value in spec.items():
            fields[key] = _literal(value)
        return LogTemplate(icon="🗓️", title="Sync Job Registered", fields=fields).format()

    # === Configuration ===

    @staticmethod
    def config_invalid(setting: str, value: Any, expected: str, hint: str | None = None) -> str:
        """Format an invalid (or clamped) configuration message."""
        return LogTemplate(
            icon="⚙️",
            title="Invalid Configuration",
            fields={"Setting": _literal(setting), "Value": _literal(value), "Expected": expected},
            hint=_literal(hint) if hint else None,
        ).format()
