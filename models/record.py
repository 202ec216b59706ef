from config.database import Base
from sqlalchemy import Column, ForeignKey, Integer, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class Record(Base):
    __tablename__ = "records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, default=func.now())
    km = Column(Numeric(10, 2), nullable=False)
    hours_worked = Column(Numeric(10, 2), nullable=False)
    gross = Column(Numeric(10, 2), default=0)
    platform_earnings = Column(Numeric(10, 2), default=0)
    tips = Column(Numeric(10, 2), default=0)
    fuel = Column(Numeric(10, 2), default=0)
    food = Column(Numeric(10, 2), default=0)
    insurance = Column(Numeric(10, 2), default=0)
    other = Column(Numeric(10, 2), default=0)
    net = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="records")
