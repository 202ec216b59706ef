import enum
from sqlalchemy import Column, ForeignKey, DateTime, Integer, String, Numeric, Enum
from sqlalchemy.orm import relationship
from config.database import Base
from sqlalchemy.sql import func

# pending -> paid -> withdrawn, failed is terminal from pending
class CommissionStatusEnum(enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    withdrawn = "withdrawn"

class Commission(Base):
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False, index=True)  # Earner
    referred_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Paying user
    payment_id = Column(String, nullable=False, index=True)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    subscription_value = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(CommissionStatusEnum), default=CommissionStatusEnum.pending, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    withdrawn_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    affiliate = relationship("Affiliates", back_populates="commissions")
