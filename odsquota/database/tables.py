"""
Database tables for the ODS quota core

Tables:
- refrigerants: Refrigerant catalog keyed by ASHRAE code
- quota_accounts: Per-importer allocation, consumption and remaining balance
- import_requests: Import requests with lifecycle status and settled flag
- import_line_items: Priced line items of each request
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RefrigerantRow(Base):
    """Refrigerant catalog entry"""

    __tablename__ = "refrigerants"

    code = Column(String(32), primary_key=True)
    chemical_name = Column(String(255), nullable=False, default="")
    hs_code = Column(String(32), nullable=True)
    gwp_coefficient = Column(Numeric(12, 4), nullable=True)  # NULL means unknown GWP
    refrigerant_type = Column(String(32), nullable=True)


class QuotaAccountRow(Base):
    """Importer quota account; remaining_balance is rewritten on every update"""

    __tablename__ = "quota_accounts"

    importer_id = Column(String(64), primary_key=True)
    allocated_quota = Column(Numeric(18, 2), nullable=False, default=0)
    cumulative_consumed = Column(Numeric(18, 2), nullable=False, default=0)
    remaining_balance = Column(Numeric(18, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ImportRequestRow(Base):
    """Import request"""

    __tablename__ = "import_requests"

    id = Column(String(64), primary_key=True)
    importer_id = Column(String(64), nullable=False, index=True)
    import_year = Column(Integer, nullable=False)
    import_number = Column(Integer, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    settled = Column(Boolean, nullable=False, default=False)
    total_co2_equivalent = Column(Numeric(18, 2), nullable=False, default=0)
    rejection_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    inspection_date = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    line_items = relationship(
        "ImportLineItemRow",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ImportLineItemRow.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_import_requests_importer_status", "importer_id", "status"),
        UniqueConstraint(
            "importer_id", "import_year", "import_number",
            name="uq_import_requests_importer_year_number",
        ),
    )


class ImportLineItemRow(Base):
    """Priced line item; co2_equivalent is authoritative at settlement"""

    __tablename__ = "import_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(
        String(64),
        ForeignKey("import_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    substance_code = Column(String(32), nullable=True)
    container_count = Column(Integer, nullable=True)
    quantity_per_container = Column(Numeric(18, 6), nullable=True)
    unit = Column(String(16), nullable=True)
    co2_equivalent = Column(Numeric(18, 2), nullable=True)

    request = relationship("ImportRequestRow", back_populates="line_items")
