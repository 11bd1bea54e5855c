# Overview: Service-layer lookups and provisioning for branches, drivers and employees.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Branch, Driver, Employee
from ..errors import NotFoundError
from ..validation import ValidationError, ConflictError, parse_amount


def get_branch(branch_id: int) -> Branch | None:
    return db.session.get(Branch, branch_id)


def require_active_branch(branch_id: int) -> Branch:
    """Return the branch or raise; parcels may only be routed through active branches."""
    branch = db.session.get(Branch, branch_id) if branch_id is not None else None
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found", branch_id=branch_id)
    if not branch.is_active:
        raise ValidationError(f"Branch {branch.name} is inactive")
    return branch


def require_active_driver(driver_id: str) -> Driver:
    driver = db.session.get(Driver, driver_id) if driver_id else None
    if not driver:
        raise NotFoundError(f"Driver {driver_id} not found", driver_id=driver_id)
    if not driver.is_active:
        raise ValidationError(f"Driver {driver_id} is inactive")
    return driver


def require_employee(employee_id: str) -> Employee:
    employee = db.session.get(Employee, employee_id) if employee_id else None
    if not employee:
        raise NotFoundError(f"Employee {employee_id} not found", employee_id=employee_id)
    return employee


def list_branches(include_inactive: bool = False) -> list[Branch]:
    query = db.session.query(Branch)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Branch.name).all()


def create_branch(*, name: str, city: str, address: str | None = None, phone: str | None = None) -> Branch:
    name = (name or "").strip()
    city = (city or "").strip()
    if not name or not city:
        raise ValidationError("name and city are required")

    branch = Branch(name=name, city=city, address=address, phone=phone, is_active=True)
    db.session.add(branch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Branch '{name}' already exists")
    return branch


def create_driver(*, driver_id: str, name: str, branch_id: int, phone: str | None = None, license_number: str | None = None) -> Driver:
    driver_id = (driver_id or "").strip()
    if not driver_id or not (name or "").strip():
        raise ValidationError("driver_id and name are required")
    require_active_branch(branch_id)
    if db.session.get(Driver, driver_id):
        raise ConflictError(f"Driver {driver_id} already exists")

    driver = Driver(
        id=driver_id,
        name=name.strip(),
        branch_id=branch_id,
        phone=phone,
        license_number=license_number,
        is_active=True,
    )
    db.session.add(driver)
    db.session.commit()
    return driver


def create_employee(
    *,
    employee_id: str,
    name: str,
    job_title: str,
    branch_id: int,
    salary=Decimal("0"),
    driver_id: str | None = None,
) -> Employee:
    employee_id = (employee_id or "").strip()
    if not employee_id or not (name or "").strip() or not (job_title or "").strip():
        raise ValidationError("employee_id, name and job_title are required")
    require_active_branch(branch_id)
    if driver_id:
        require_active_driver(driver_id)
    if db.session.get(Employee, employee_id):
        raise ConflictError(f"Employee {employee_id} already exists")

    employee = Employee(
        id=employee_id,
        name=name.strip(),
        job_title=job_title.strip(),
        branch_id=branch_id,
        salary=parse_amount(salary, "salary"),
        driver_id=driver_id,
        is_active=True,
    )
    db.session.add(employee)
    db.session.commit()
    return employee


def set_driver_active(driver_id: str, is_active: bool) -> Driver:
    driver = db.session.get(Driver, driver_id)
    if not driver:
        raise NotFoundError(f"Driver {driver_id} not found", driver_id=driver_id)
    driver.is_active = bool(is_active)
    db.session.commit()
    return driver


def set_branch_active(branch_id: int, is_active: bool) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found", branch_id=branch_id)
    branch.is_active = bool(is_active)
    db.session.commit()
    return branch
