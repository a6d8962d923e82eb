"""Dispensation rows for the database storage backend."""

from sqlalchemy import BigInteger, Column, DateTime, String, Text

from app.db.session import Base


class Dispensation(Base):
    __tablename__ = "dispensations"

    # Epoch milliseconds at submission; assigned by the application, not the database
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    tracking_code = Column(String(10), nullable=False, index=True)
    student_name = Column(String(200), nullable=False)
    student_class = Column(String(50), nullable=False)
    reason = Column(Text, nullable=False)
    destination = Column(Text, nullable=False, default="")
    departure_time = Column(DateTime(timezone=True), nullable=False)
    return_time = Column(DateTime(timezone=True), nullable=False)
    photo_path = Column(String(500), nullable=True)
    photo_original_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    approved_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
