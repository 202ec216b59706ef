from config.database import Base
from sqlalchemy import Column, ForeignKey, Integer, String, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class Withdraw(Base):
    __tablename__ = "withdraws"
    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    pix_key = Column(String, nullable=False)
    transaction_id = Column(String, nullable=True)  # Id returned by the PIX provider
    status = Column(String, default="completed")
    created_at = Column(DateTime, default=func.now())

    affiliate = relationship("Affiliates", back_populates="withdraws")
