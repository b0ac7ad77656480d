"""
Employee profile provisioning for calendar users.

Suggestions and time entries are keyed by employee, so a user who connects a
calendar before an admin created their employee record gets one on demand.
"""

from calsync.infrastructure.observability.logging import get_logger
from calsync.models.domain.calendar_domain import Employee
from calsync.models.domain.oauth_domain import AccountProfile
from calsync.repositories.employee_repository import EmployeeRepository

logger = get_logger(__name__)

PLACEHOLDER_FIRST_NAME = "Calendar"
PLACEHOLDER_LAST_NAME = "User"


def derive_employee_names(profile: AccountProfile | None) -> tuple[str, str]:
    """First/last name from provider profile data, with fixed placeholders."""
    if profile is None:
        return PLACEHOLDER_FIRST_NAME, PLACEHOLDER_LAST_NAME

    first = (profile.given_name or "").strip()
    last = (profile.family_name or "").strip()

    if not (first and last) and profile.display_name:
        parts = profile.display_name.strip().split(maxsplit=1)
        if not first and parts:
            first = parts[0]
        if not last and len(parts) > 1:
            last = parts[1]

    return first or PLACEHOLDER_FIRST_NAME, last or PLACEHOLDER_LAST_NAME


class EmployeeService:
    def __init__(self, employees: EmployeeRepository):
        self.employees = employees

    async def ensure_employee(
        self, tenant_id: str, user_id: str, profile: AccountProfile | None = None
    ) -> Employee:
        """Return the user's employee record, creating it if missing."""
        employee = await self.employees.find_by_user(tenant_id, user_id)
        if employee:
            return employee

        first_name, last_name = derive_employee_names(profile)
        employee = await self.employees.create(
            tenant_id,
            user_id,
            first_name=first_name,
            last_name=last_name,
            email=profile.email if profile else None,
        )
        logger.info(
            "Employee profile auto-created",
            tenant_id=tenant_id,
            user_id=user_id,
            employee_id=employee.id,
            used_placeholders=(first_name, last_name)
            == (PLACEHOLDER_FIRST_NAME, PLACEHOLDER_LAST_NAME),
        )
        return employee
