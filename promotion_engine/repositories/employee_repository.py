from sqlalchemy import select, update
from sqlalchemy.orm import Session

from promotion_engine.models.employee import Employee


class EmployeeRepository:
    """직원 디렉터리 조회 (소속 매장/직위 확인용)"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, employee_id: str) -> Employee | None:
        return self.db.get(Employee, employee_id)

    def list_active_by_store(self, store_name: str) -> list[Employee]:
        stmt = (
            select(Employee)
            .where(
                Employee.store_name == store_name,
                Employee.is_active.is_(True),
            )
            .order_by(Employee.employee_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def update_position(self, employee_id: str, position: str) -> bool:
        """직위 변경 (트랜잭션은 호출자가 관리)"""
        stmt = (
            update(Employee)
            .where(Employee.employee_id == employee_id)
            .values(position=position)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount > 0
