from sqlalchemy import String, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from promotion_engine.db import Base


class Employee(Base):
    """외부 인사 디렉터리의 로컬 투영 (직원 명부)"""
    __tablename__ = "employees"
    __table_args__ = (
        Index("idx_employees_store_name", "store_name"),
    )

    employee_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    store_name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
