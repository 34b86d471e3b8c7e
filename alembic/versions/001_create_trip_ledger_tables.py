"""Create trip ledger tables

Revision ID: 001_trip_ledger
Revises:
Create Date: 2026-10-17

Creates the read-only master tables (customers, vendors, vehicles, drivers,
projects, vehicle_project_assignments), the two transaction stores and the
ordered vehicle/driver link tables of fixed trips.

Tables:
- fixed_transactions, fixed_transaction_vehicles, fixed_transaction_drivers
- adhoc_transactions (Adhoc and Replacement trips)
"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_trip_ledger'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def money(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def envelope_columns() -> List[sa.Column]:
    """Columns shared by both transaction stores."""
    return [
        sa.Column('trip_type', sa.String(20), nullable=False, comment='Fixed, Adhoc, Replacement'),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('trip_no', sa.String(50), nullable=True),
        sa.Column('shift', sa.String(20), nullable=True),
        sa.Column('customer_id', sa.Integer(),
                  sa.ForeignKey('customers.customer_id', ondelete='RESTRICT'), nullable=False),
        sa.Column('project_id', sa.Integer(),
                  sa.ForeignKey('projects.project_id', ondelete='SET NULL'), nullable=True),
        # Hub checkpoints
        sa.Column('vehicle_reporting_at_hub', sa.Time(), nullable=True),
        sa.Column('vehicle_entry_in_hub', sa.Time(), nullable=True),
        sa.Column('vehicle_out_from_hub_for_delivery', sa.Time(), nullable=True),
        sa.Column('vehicle_return_at_hub', sa.Time(), nullable=True),
        sa.Column('vehicle_entered_at_hub_return', sa.Time(), nullable=True),
        sa.Column('vehicle_out_from_hub_final', sa.Time(), nullable=True),
        # Odometer
        money('opening_km', nullable=False),
        money('closing_km'),
        sa.Column('total_duty_hours', sa.Numeric(6, 2), nullable=True),
        # Charges
        money('v_freight_fix'),
        money('toll_expenses'),
        money('parking_charges'),
        money('loading_charges'),
        money('unloading_charges'),
        money('handling_charges'),
        money('other_charges'),
        sa.Column('other_charges_remarks', sa.Text(), nullable=True),
        sa.Column('total_freight', sa.Numeric(12, 2), nullable=False, server_default='0'),
        # Attachments
        sa.Column('driver_aadhar_doc', sa.String(500), nullable=True),
        sa.Column('driver_licence_doc', sa.String(500), nullable=True),
        sa.Column('toll_expenses_doc', sa.String(500), nullable=True),
        sa.Column('parking_charges_doc', sa.String(500), nullable=True),
        sa.Column('opening_km_image', sa.String(500), nullable=True),
        sa.Column('closing_km_image', sa.String(500), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('trip_close', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create master, transaction and link tables."""

    # ==================== master data ====================
    op.create_table(
        'customers',
        sa.Column('customer_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(30), nullable=True),
        sa.Column('gst_no', sa.String(20), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('customer_site', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_table(
        'vendors',
        sa.Column('vendor_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(30), nullable=True),
        sa.Column('mobile_no', sa.String(15), nullable=True),
    )
    op.create_table(
        'vehicles',
        sa.Column('vehicle_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('registration_no', sa.String(20), nullable=False),
        sa.Column('vehicle_type', sa.String(50), nullable=True),
        sa.Column('body_type', sa.String(50), nullable=True),
        sa.Column('vendor_id', sa.Integer(),
                  sa.ForeignKey('vendors.vendor_id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
    )
    op.create_index('ix_vehicles_registration_no', 'vehicles', ['registration_no'])
    op.create_table(
        'drivers',
        sa.Column('driver_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('mobile_no', sa.String(15), nullable=True),
        sa.Column('licence_no', sa.String(30), nullable=True),
        sa.Column('vendor_id', sa.Integer(),
                  sa.ForeignKey('vendors.vendor_id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
    )
    op.create_table(
        'projects',
        sa.Column('project_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(30), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('customer_id', sa.Integer(),
                  sa.ForeignKey('customers.customer_id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
    )
    op.create_index('ix_drivers_vendor_id', 'drivers', ['vendor_id'])
    op.create_table(
        'vehicle_project_assignments',
        sa.Column('assignment_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('vehicle_id', sa.Integer(),
                  sa.ForeignKey('vehicles.vehicle_id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_id', sa.Integer(),
                  sa.ForeignKey('projects.project_id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_id', sa.Integer(),
                  sa.ForeignKey('customers.customer_id', ondelete='CASCADE'), nullable=False),
        sa.Column('placement_type', sa.String(30), nullable=True),
        sa.Column('assigned_date', sa.Date(), nullable=True),
        sa.Column('assignment_notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
    )
    op.create_index('ix_vehicle_project_assignments_vehicle_id',
                    'vehicle_project_assignments', ['vehicle_id'])
    op.create_index('ix_vehicle_project_assignments_customer_id',
                    'vehicle_project_assignments', ['customer_id'])

    # ==================== fixed_transactions ====================
    op.create_table(
        'fixed_transactions',
        sa.Column('transaction_id', sa.Integer(), primary_key=True, autoincrement=True),
        *envelope_columns(),
        sa.Column('vendor_id', sa.Integer(),
                  sa.ForeignKey('vendors.vendor_id', ondelete='SET NULL'), nullable=True),
        sa.Column('replacement_driver_name', sa.String(200), nullable=True),
        sa.Column('replacement_driver_no', sa.String(15), nullable=True),
        sa.Column('total_deliveries', sa.Integer(), nullable=True),
        sa.Column('total_deliveries_attempted', sa.Integer(), nullable=True),
        sa.Column('total_deliveries_done', sa.Integer(), nullable=True),
        sa.Column('company_name', sa.String(200), nullable=True),
        sa.Column('gst_no', sa.String(20), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('customer_site', sa.String(200), nullable=True),
        sqlite_autoincrement=True,
    )
    for column in ('trip_type', 'transaction_date', 'customer_id', 'updated_at'):
        op.create_index(f'ix_fixed_transactions_{column}', 'fixed_transactions', [column])

    op.create_table(
        'fixed_transaction_vehicles',
        sa.Column('transaction_id', sa.Integer(),
                  sa.ForeignKey('fixed_transactions.transaction_id', ondelete='CASCADE'),
                  primary_key=True),
        sa.Column('position', sa.Integer(), primary_key=True),
        sa.Column('vehicle_id', sa.Integer(),
                  sa.ForeignKey('vehicles.vehicle_id', ondelete='RESTRICT'), nullable=False),
        sa.UniqueConstraint('transaction_id', 'vehicle_id', name='uq_fixed_transaction_vehicle'),
    )
    op.create_index('ix_fixed_transaction_vehicles_vehicle_id',
                    'fixed_transaction_vehicles', ['vehicle_id'])

    op.create_table(
        'fixed_transaction_drivers',
        sa.Column('transaction_id', sa.Integer(),
                  sa.ForeignKey('fixed_transactions.transaction_id', ondelete='CASCADE'),
                  primary_key=True),
        sa.Column('position', sa.Integer(), primary_key=True),
        sa.Column('driver_id', sa.Integer(),
                  sa.ForeignKey('drivers.driver_id', ondelete='RESTRICT'), nullable=False),
        sa.UniqueConstraint('transaction_id', 'driver_id', name='uq_fixed_transaction_driver'),
    )
    op.create_index('ix_fixed_transaction_drivers_driver_id',
                    'fixed_transaction_drivers', ['driver_id'])

    # ==================== adhoc_transactions ====================
    op.create_table(
        'adhoc_transactions',
        sa.Column('transaction_id', sa.Integer(), primary_key=True, autoincrement=True),
        *envelope_columns(),
        sa.Column('vehicle_number', sa.String(20), nullable=False),
        sa.Column('vehicle_type', sa.String(50), nullable=True),
        sa.Column('vendor_name', sa.String(200), nullable=False),
        sa.Column('vendor_number', sa.String(15), nullable=True),
        sa.Column('driver_name', sa.String(200), nullable=False),
        sa.Column('driver_number', sa.String(15), nullable=False),
        sa.Column('driver_aadhar_number', sa.String(12), nullable=True),
        sa.Column('driver_licence_number', sa.String(30), nullable=True),
        sa.Column('total_shipments_for_deliveries', sa.Integer(), nullable=True),
        sa.Column('total_shipment_deliveries_attempted', sa.Integer(), nullable=True),
        sa.Column('total_shipment_deliveries_done', sa.Integer(), nullable=True),
        money('fix_km'),
        sa.Column('v_freight_variable', sa.Numeric(12, 2), nullable=True, comment='Freight rate per KM'),
        sa.Column('advance_request_no', sa.String(50), nullable=True),
        money('advance_to_paid'),
        money('advance_approved_amount'),
        sa.Column('advance_approved_by', sa.String(100), nullable=True),
        money('advance_paid_amount'),
        sa.Column('advance_paid_mode', sa.String(30), nullable=True),
        sa.Column('advance_paid_date', sa.Date(), nullable=True),
        sa.Column('advance_paid_by', sa.String(100), nullable=True),
        sa.Column('employee_details_advance', sa.Text(), nullable=True),
        money('balance_paid_amount'),
        sa.Column('balance_paid_date', sa.Date(), nullable=True),
        sa.Column('balance_paid_by', sa.String(100), nullable=True),
        sa.Column('employee_details_balance', sa.Text(), nullable=True),
        money('revenue'),
        sa.Column('balance_to_be_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('variance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('margin', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('margin_percentage', sa.Numeric(9, 4), nullable=False, server_default='0',
                  comment='Fraction of revenue, 0.25 == 25%'),
        sqlite_autoincrement=True,
    )
    for column in ('trip_type', 'transaction_date', 'customer_id', 'updated_at'):
        op.create_index(f'ix_adhoc_transactions_{column}', 'adhoc_transactions', [column])


def downgrade() -> None:
    """Drop all trip ledger tables."""
    op.drop_table('adhoc_transactions')
    op.drop_table('fixed_transaction_drivers')
    op.drop_table('fixed_transaction_vehicles')
    op.drop_table('fixed_transactions')
    op.drop_table('vehicle_project_assignments')
    op.drop_table('projects')
    op.drop_table('drivers')
    op.drop_table('vehicles')
    op.drop_table('vendors')
    op.drop_table('customers')
