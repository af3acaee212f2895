"""Read-only selectors for the settlement kernel."""

from settlement_kernel.selectors.pay_application_selector import PayApplicationSelector
from settlement_kernel.selectors.project_selector import ProjectDashboard, ProjectSelector

__all__ = [
    "PayApplicationSelector",
    "ProjectDashboard",
    "ProjectSelector",
]
