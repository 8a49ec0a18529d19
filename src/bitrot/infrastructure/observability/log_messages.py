"""Structured log message templates for the Discogs enrichment flow.

Hey future me - operators need to tell "not configured" from "Discogs is down" from
"genuinely not on Discogs" at a glance. These templates make that obvious:

    ⚠️ Discogs Temporarily Unavailable
    ├─ Reason: Discogs upstream error 502
    ├─ Status: 502
    └─ 💡 Nothing was recorded for release abc - the next trigger retries it

Usage:
    from bitrot.infrastructure.observability.log_messages import LogMessages

    logger.warning(LogMessages.upstream_temporary_error(
        service="Discogs", error=str(err), status=err.status
    ))
"""

from dataclasses import dataclass


@dataclass
class LogTemplate:
    """A log message: icon + title line, tree of fields, optional hint."""

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self) -> str:
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value) in enumerate(field_items):
            # Last line uses └─ unless a hint follows
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"
            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            lines.append(f"└─ 💡 {self.hint}")

        return "\n".join(lines)


class LogMessages:
    """Collection of standardized log message templates."""

    @staticmethod
    def service_not_configured(service: str, setting: str, hint: str | None = None) -> str:
        """Format a missing-configuration message.

        Example:
            logger.error(LogMessages.service_not_configured("Discogs", "DISCOGS_TOKEN"))
        """
        template = LogTemplate(
            icon="🔴",
            title=f"{service} Not Configured",
            fields={"Missing": setting},
            hint=hint or f"Set {setting} in the environment or .env and restart",
        )
        return template.format()

    @staticmethod
    def upstream_temporary_error(
        service: str,
        error: str,
        status: int | None = None,
        will_retry: bool = False,
        hint: str | None = None,
    ) -> str:
        """Format a transient upstream failure (429, 5xx, HTML body)."""
        fields = {"Reason": error}
        if status is not None:
            fields["Status"] = str(status)
        fields["Retry"] = "once, after backoff" if will_retry else "no"
        template = LogTemplate(
            icon="⚠️",
            title=f"{service} Temporarily Unavailable",
            fields=fields,
            hint=hint,
        )
        return template.format()

    @staticmethod
    def upstream_request_failed(
        service: str, error: str, status: int | None = None, target: str | None = None
    ) -> str:
        """Format a non-retryable upstream failure."""
        fields = {"Reason": error}
        if status is not None:
            fields["Status"] = str(status)
        if target:
            fields["Target"] = target
        template = LogTemplate(icon="🔴", title=f"{service} Request Failed", fields=fields)
        return template.format()

    @staticmethod
    def match_decided(
        release_id: str, status: str, score: float, discogs_release_id: int | None
    ) -> str:
        """Format the outcome of one matching run."""
        icon = {"matched": "✅", "suggested": "🟡"}.get(status, "⚪")
        template = LogTemplate(
            icon=icon,
            title=f"Discogs Match {status.capitalize()}",
            fields={
                "Release": release_id,
                "Score": f"{score:g}",
                "Discogs release": str(discogs_release_id or "-"),
            },
        )
        return template.format()


__all__ = ["LogMessages", "LogTemplate"]
