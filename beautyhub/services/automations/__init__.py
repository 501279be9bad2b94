"""Marketing automation engine."""

from beautyhub.services.automations.engine import (
    AutomationEngine,
    AutomationError,
    AutomationRunResult,
    run_locked_pass,
)
from beautyhub.services.automations.templates import seed_provider_automation_templates
from beautyhub.services.automations.triggers import registered_trigger_types

__all__ = [
    "AutomationEngine",
    "AutomationError",
    "AutomationRunResult",
    "registered_trigger_types",
    "run_locked_pass",
    "seed_provider_automation_templates",
]
