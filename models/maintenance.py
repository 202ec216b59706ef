from config.database import Base
from sqlalchemy import Column, ForeignKey, Integer, String, Text, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class Maintenance(Base):
    __tablename__ = "maintenances"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # Oil change, tyres, ...
    cost = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, default="")
    date = Column(DateTime, nullable=False, default=func.now())

    user = relationship("User", back_populates="maintenances")
