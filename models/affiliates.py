from sqlalchemy import Column, ForeignKey, DateTime, Integer, String, JSON
from sqlalchemy.orm import relationship
from config.database import Base
from sqlalchemy.sql import func

class Affiliates(Base):
    __tablename__ = "affiliates"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)  # One profile per user
    affiliate_code = Column(String, unique=True, nullable=False)
    custom_slug = Column(String, unique=True, nullable=True)
    total_referrals = Column(Integer, default=0, nullable=False)
    affiliate_level = Column(Integer, default=1, nullable=False)  # 1..10, never goes down
    experience = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    last_referral_date = Column(DateTime, nullable=True)
    badges = Column(JSON, default=list, nullable=False)  # Append-only badge ids
    withdrawal_key = Column(String, nullable=True)  # PIX key for payouts
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="affiliate")
    commissions = relationship("Commission", back_populates="affiliate")
    withdraws = relationship("Withdraw", back_populates="affiliate")
