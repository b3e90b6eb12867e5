from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


class OrderRecord(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    submitting_user = Column(String, index=True, nullable=False)
    customer_name = Column(String, nullable=False, default="")
    items_json = Column(Text, default="[]")  # [{"description", "quantity", "code"}, ...]
    dispatch_date = Column(String, nullable=True)  # MM/DD/YYYY
    note = Column(Text, default="")
    manual_address = Column(Text, default="")
    address = Column(Text, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
