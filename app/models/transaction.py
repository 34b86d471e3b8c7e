"""Daily vehicle transaction models.

Two physical stores back one logical ledger:

* ``fixed_transactions`` - contracted trips referencing master vehicles and
  drivers through the ordered join tables ``fixed_transaction_vehicles`` and
  ``fixed_transaction_drivers``.
* ``adhoc_transactions`` - Adhoc and Replacement trips with vendor, vehicle and
  driver captured as free text plus advance/balance payment tracking.

Each store has its own autoincrement ``transaction_id``; the same number can
exist in both, so callers always carry ``trip_type``.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.master import Customer, Driver, Project, Vehicle, Vendor


class TripType(str, Enum):
    """Trip type discriminator."""
    FIXED = "Fixed"
    ADHOC = "Adhoc"
    REPLACEMENT = "Replacement"

    @property
    def is_fixed(self) -> bool:
        return self is TripType.FIXED


class TransactionStatus(str, Enum):
    """Transaction approval status."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


# Hub checkpoints, in the chronological order they must respect
HUB_CHECKPOINT_FIELDS = (
    "vehicle_reporting_at_hub",
    "vehicle_entry_in_hub",
    "vehicle_out_from_hub_for_delivery",
    "vehicle_return_at_hub",
    "vehicle_entered_at_hub_return",
    "vehicle_out_from_hub_final",
)

ATTACHMENT_FIELDS = (
    "driver_aadhar_doc",
    "driver_licence_doc",
    "toll_expenses_doc",
    "parking_charges_doc",
    "opening_km_image",
    "closing_km_image",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripEnvelopeMixin:
    """Columns shared by both stores."""

    trip_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Fixed, Adhoc, Replacement"
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    trip_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    shift: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Hub checkpoints
    vehicle_reporting_at_hub: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    vehicle_entry_in_hub: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    vehicle_out_from_hub_for_delivery: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    vehicle_return_at_hub: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    vehicle_entered_at_hub_return: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    vehicle_out_from_hub_final: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    # Odometer
    opening_km: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    closing_km: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    total_duty_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)

    # Charges
    v_freight_fix: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    toll_expenses: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    parking_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    loading_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    unloading_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    handling_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    other_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    other_charges_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Derived
    total_freight: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Recomputed by the financial deriver on every write"
    )

    # Attachments (relative paths in the attachment store)
    driver_aadhar_doc: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    driver_licence_doc: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    toll_expenses_doc: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    parking_charges_doc: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    opening_km_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    closing_km_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.PENDING.value,
        nullable=False
    )
    trip_close: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        index=True
    )

    @property
    def variant(self) -> TripType:
        return TripType(self.trip_type)


class FixedTransaction(TripEnvelopeMixin, Base):
    """
    Fixed trip under a standing vehicle/driver assignment.
    Vehicles and drivers are master references kept in caller order.
    """
    __tablename__ = "fixed_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    transaction_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    project_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("projects.project_id", ondelete="SET NULL"),
        nullable=True
    )
    vendor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("vendors.vendor_id", ondelete="SET NULL"),
        nullable=True
    )

    replacement_driver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    replacement_driver_no: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)

    # Delivery counters
    total_deliveries: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_deliveries_attempted: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_deliveries_done: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Customer snapshot at intake
    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    gst_no: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_site: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", lazy="joined")
    project: Mapped[Optional["Project"]] = relationship("Project", lazy="joined")
    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor", lazy="joined")
    vehicle_links: Mapped[List["FixedTransactionVehicle"]] = relationship(
        "FixedTransactionVehicle",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="FixedTransactionVehicle.position",
        lazy="selectin",
        passive_deletes=True
    )
    driver_links: Mapped[List["FixedTransactionDriver"]] = relationship(
        "FixedTransactionDriver",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="FixedTransactionDriver.position",
        lazy="selectin",
        passive_deletes=True
    )

    @property
    def vehicle_ids(self) -> List[int]:
        return [link.vehicle_id for link in self.vehicle_links]

    @property
    def driver_ids(self) -> List[int]:
        return [link.driver_id for link in self.driver_links]

    def __repr__(self) -> str:
        return f"<FixedTransaction(id={self.transaction_id}, date={self.transaction_date})>"


class FixedTransactionVehicle(Base):
    """Ordered vehicle reference of a fixed trip; position 0 is the primary vehicle."""
    __tablename__ = "fixed_transaction_vehicles"
    __table_args__ = (
        UniqueConstraint("transaction_id", "vehicle_id", name="uq_fixed_transaction_vehicle"),
    )

    transaction_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("fixed_transactions.transaction_id", ondelete="CASCADE"),
        primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("vehicles.vehicle_id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    transaction: Mapped["FixedTransaction"] = relationship(
        "FixedTransaction", back_populates="vehicle_links"
    )
    vehicle: Mapped["Vehicle"] = relationship("Vehicle", lazy="joined")


class FixedTransactionDriver(Base):
    """Ordered driver reference of a fixed trip; position 0 is the primary driver."""
    __tablename__ = "fixed_transaction_drivers"
    __table_args__ = (
        UniqueConstraint("transaction_id", "driver_id", name="uq_fixed_transaction_driver"),
    )

    transaction_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("fixed_transactions.transaction_id", ondelete="CASCADE"),
        primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    driver_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("drivers.driver_id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    transaction: Mapped["FixedTransaction"] = relationship(
        "FixedTransaction", back_populates="driver_links"
    )
    driver: Mapped["Driver"] = relationship("Driver", lazy="joined")


class AdhocTransaction(TripEnvelopeMixin, Base):
    """
    Adhoc or Replacement trip.
    Vendor, vehicle and driver are free text; adds advance/balance payments
    and revenue/margin tracking.
    """
    __tablename__ = "adhoc_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    transaction_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.customer_id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    project_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("projects.project_id", ondelete="SET NULL"),
        nullable=True
    )

    # Manual entry
    vehicle_number: Mapped[str] = mapped_column(String(20), nullable=False)
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    vendor_number: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    driver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    driver_number: Mapped[str] = mapped_column(String(15), nullable=False)
    driver_aadhar_number: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    driver_licence_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Shipment counters
    total_shipments_for_deliveries: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_shipment_deliveries_attempted: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_shipment_deliveries_done: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Variable freight
    fix_km: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    v_freight_variable: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Freight rate per KM"
    )

    # Advance payment
    advance_request_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    advance_to_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    advance_approved_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    advance_approved_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    advance_paid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    advance_paid_mode: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    advance_paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    advance_paid_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    employee_details_advance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Balance payment
    balance_paid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    balance_paid_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    balance_paid_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    employee_details_balance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Revenue and derived figures
    revenue: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    balance_to_be_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    variance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    margin: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    margin_percentage: Mapped[Decimal] = mapped_column(
        Numeric(9, 4),
        nullable=False,
        default=Decimal("0"),
        comment="Fraction of revenue, 0.25 == 25%"
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", lazy="joined")
    project: Mapped[Optional["Project"]] = relationship("Project", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<AdhocTransaction(id={self.transaction_id}, type='{self.trip_type}', "
            f"date={self.transaction_date})>"
        )


TRANSACTION_MODELS = {
    TripType.FIXED: FixedTransaction,
    TripType.ADHOC: AdhocTransaction,
    TripType.REPLACEMENT: AdhocTransaction,
}
