"""ORM model for the store-level source table (database backend).

Grain: one row per (application_month, dealer_code). The dashboard only
reads this table; rows are loaded by upstream reporting jobs or the seed
script.
"""

import datetime
from decimal import Decimal

from sqlalchemy import Date, Index, Integer, MetaData, Numeric, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class StoreLevelRow(Base):
    """Monthly finance activity of one store.

    Attributes:
        id: Primary key.
        application_month: Any date within the month (day is ignored).
        dealer_code: Store identifier.
        submerchant: Store display name.
        net_incoming: Applications submitted.
        approved: Applications approved.
        trx_settled: Settled transactions.
        gmv: Gross merchandise value of settled transactions.
    """

    __tablename__ = "store_level"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_month: Mapped[datetime.date] = mapped_column(Date, index=True)
    dealer_code: Mapped[str] = mapped_column(String(50), index=True)
    submerchant: Mapped[str | None] = mapped_column(String(200), nullable=True)
    net_incoming: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trx_settled: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gmv: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    __table_args__ = (Index("ix_store_level_month_dealer", "application_month", "dealer_code"),)


def store_level_table(table_name: str = StoreLevelRow.__tablename__) -> Table:
    """Core table for ``StoreLevelRow`` under the configured source table name.

    Deployments name the table per merchant (``KVVN_SF_FRT_Store_Level``);
    the columns are the same, so the mapped table is copied under that name.
    """
    mapped: Table = StoreLevelRow.__table__  # type: ignore[assignment]
    if table_name == mapped.name:
        return mapped
    return mapped.to_metadata(MetaData(), name=table_name)
