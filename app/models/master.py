"""Master data read by the trip ledger (customers, vendors, vehicles, drivers, projects).

These tables are owned by the master-data service; the ledger only looks rows
up for existence checks, display names and the intake form lookups.
"""
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Date, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


# Status value of master rows that may be offered on the intake form
ACTIVE = "Active"


class Customer(Base):
    """Customer master record."""
    __tablename__ = "customers"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    gst_no: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_site: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def display_name(self) -> str:
        """Name with the customer code in brackets, when there is one."""
        return f"{self.name} ({self.code})" if self.code else self.name

    def __repr__(self) -> str:
        return f"<Customer(id={self.customer_id}, name='{self.name}')>"


class Vendor(Base):
    """Vendor (fleet owner) master record."""
    __tablename__ = "vendors"

    vendor_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    mobile_no: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)

    def __repr__(self) -> str:
        return f"<Vendor(id={self.vendor_id}, name='{self.name}')>"


class Vehicle(Base):
    """Vehicle master record."""
    __tablename__ = "vehicles"

    vehicle_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_no: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    body_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vendor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
        nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE, nullable=False)

    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor", lazy="joined")

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.vehicle_id}, registration_no='{self.registration_no}')>"


class Driver(Base):
    """Driver master record; drivers belong to the vendor whose vehicles they drive."""
    __tablename__ = "drivers"

    driver_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    mobile_no: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    licence_no: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    vendor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE, nullable=False)

    def __repr__(self) -> str:
        return f"<Driver(id={self.driver_id}, name='{self.name}')>"


class Project(Base):
    """Customer project master record."""
    __tablename__ = "projects"

    project_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="SET NULL"),
        nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE, nullable=False)

    def __repr__(self) -> str:
        return f"<Project(id={self.project_id}, name='{self.name}')>"


class VehicleAssignment(Base):
    """Placement of a vehicle on a customer project."""
    __tablename__ = "vehicle_project_assignments"

    assignment_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vehicle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("vehicles.vehicle_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.project_id", ondelete="CASCADE"),
        nullable=False
    )
    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    placement_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    assigned_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    assignment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=ACTIVE, nullable=False)

    vehicle: Mapped["Vehicle"] = relationship("Vehicle", lazy="joined")
    project: Mapped["Project"] = relationship("Project", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<VehicleAssignment(vehicle_id={self.vehicle_id}, "
            f"project_id={self.project_id}, status='{self.status}')>"
        )
