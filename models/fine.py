import enum
from config.database import Base
from sqlalchemy import Column, ForeignKey, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class FineStatusEnum(enum.Enum):
    pending = "pending"
    paid = "paid"
    contested = "contested"

class Fine(Base):
    __tablename__ = "fines"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    location = Column(String, default="")
    status = Column(Enum(FineStatusEnum), default=FineStatusEnum.pending, nullable=False)
    date = Column(DateTime, nullable=False, default=func.now())

    user = relationship("User", back_populates="fines")
