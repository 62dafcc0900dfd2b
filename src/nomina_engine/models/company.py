"""Company, payroll policy and employee models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nomina_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from nomina_engine.models.payroll import PayrollPeriod


class Company(Base, TimestampMixin):
    """Employer company."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    nit: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
    periods: Mapped[list[PayrollPeriod]] = relationship(back_populates="company")
    policy: Mapped[CompanyPayrollPolicy | None] = relationship(back_populates="company")


class CompanyPayrollPolicy(Base):
    """Company-wide payroll policy switches."""

    __tablename__ = "company_payroll_policy"

    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        primary_key=True,
    )
    ibc_mode: Mapped[str] = mapped_column(String, nullable=False, default="proportional")
    incapacity_policy: Mapped[str] = mapped_column(
        String, nullable=False, default="standard_2d_100_rest_66"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "ibc_mode IN ('proportional', 'full_salary')",
            name="company_policy_ibc_mode_check",
        ),
        CheckConstraint(
            "incapacity_policy IN ('standard_2d_100_rest_66', 'from_day1_66_with_floor')",
            name="company_policy_incapacity_check",
        ),
    )

    company: Mapped[Company] = relationship(back_populates="policy")


class Employee(Base, TimestampMixin):
    """Employee with salary and social security affiliations."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    document_number: Mapped[str] = mapped_column(String, nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    contract_type: Mapped[str] = mapped_column(String, nullable=False, default="indefinite")
    health_insurer: Mapped[str | None] = mapped_column(String, nullable=True)
    pension_fund: Mapped[str | None] = mapped_column(String, nullable=True)
    arl_insurer: Mapped[str | None] = mapped_column(String, nullable=True)
    arl_risk_class: Mapped[str] = mapped_column(String, nullable=False, default="I")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "document_number", name="employee_company_document_unique"),
        CheckConstraint(
            "status IN ('active', 'inactive', 'on_leave')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "arl_risk_class IN ('I', 'II', 'III', 'IV', 'V')",
            name="employee_risk_class_check",
        ),
        CheckConstraint("base_salary >= 0", name="employee_salary_check"),
    )

    company: Mapped[Company] = relationship(back_populates="employees")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
