from config.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    phone = Column(String(15), unique=True, nullable=False)
    password = Column(String, nullable=False)
    is_paid = Column(Boolean, default=False)
    payment_id = Column(String, nullable=True, index=True)  # Last PIX cash-in id
    payment_status = Column(String, nullable=True, default="pending")
    trial_start_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)
    is_trial_active = Column(Boolean, default=False)
    block = Column(Boolean, default=False)
    referred_by = Column(String, nullable=True, index=True)  # Affiliate code, set only at registration
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    affiliate = relationship("Affiliates", back_populates="user", uselist=False)
    records = relationship("Record", back_populates="user")
    maintenances = relationship("Maintenance", back_populates="user")
    fines = relationship("Fine", back_populates="user")
