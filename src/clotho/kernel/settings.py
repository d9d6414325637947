"""
Application Settings - tuning knobs for the lifecycle controller

Lifecycle events should settle swiftly to minimize the period during which the
system is in a transitional state. The timeout also keeps an application from
getting stuck behind an update that never settles.
"""

import os

from pydantic import BaseModel, Field


class ApplicationSettings(BaseModel):
    """
    Lifecycle controller parameters

    Settings are read once per scheduled update, so changing them only affects
    updates scheduled afterwards.
    """

    timeout_ms: int = Field(
        default=500,
        ge=0,
        description="Maximum duration in milliseconds for a transition to settle",
    )

    warnings: bool = Field(
        default=False,
        description="Log a warning whenever a transition is rolled back (development aid)",
    )

    model_config = {
        "frozen": False,
        "json_schema_extra": {
            "description": "Timeout and diagnostics for scheduled transitions"
        },
    }

    @classmethod
    def from_env(cls) -> "ApplicationSettings":
        """
        Build settings from CLOTHO_TIMEOUT_MS and CLOTHO_WARNINGS

        Lowering the timeout and enabling warnings during development helps
        to identify slow or deadlocked modules early.
        """
        values: dict[str, object] = {}
        if "CLOTHO_TIMEOUT_MS" in os.environ:
            values["timeout_ms"] = os.environ["CLOTHO_TIMEOUT_MS"]
        if "CLOTHO_WARNINGS" in os.environ:
            values["warnings"] = os.environ["CLOTHO_WARNINGS"]
        return cls.model_validate(values)


