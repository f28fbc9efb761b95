from sqlalchemy import Column, Integer, String, Date, Time, ForeignKey, UniqueConstraint

from bsg_helpdesk.core.database import Base


class BusinessHours(Base):
    __tablename__ = "business_hours"
    __table_args__ = (UniqueConstraint("department_id", "day_of_week", name="uq_business_hours_day"),)

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    # NULL applies to every department
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
