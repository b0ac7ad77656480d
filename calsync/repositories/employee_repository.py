"""
Read/insert access to the `employees` table owned by the core CRUD layer.
Only what calendar features need: lookup by user and auto-provisioning.
"""

from calsync.db.helpers import fetch_one, with_db_retry
from calsync.models.domain.calendar_domain import Employee

_EMPLOYEE_COLUMNS = """
    id::text AS id, tenant_id::text AS tenant_id, user_id::text AS user_id,
    first_name, last_name, email
"""


class EmployeeRepository:
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_by_user(self, tenant_id: str, user_id: str) -> Employee | None:
        query = f"""
        SELECT {_EMPLOYEE_COLUMNS}
        FROM employees
        WHERE tenant_id = %s AND user_id = %s
        LIMIT 1
        """
        row = await fetch_one(query, (tenant_id, user_id))
        return Employee(**row) if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def create(
        self,
        tenant_id: str,
        user_id: str,
        first_name: str,
        last_name: str,
        email: str | None,
    ) -> Employee:
        query = f"""
        INSERT INTO employees (tenant_id, user_id, first_name, last_name, email, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
        RETURNING {_EMPLOYEE_COLUMNS}
        """
        row = await fetch_one(query, (tenant_id, user_id, first_name, last_name, email))
        return Employee(**row)
