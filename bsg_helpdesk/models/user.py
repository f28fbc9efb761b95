from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

USER_ROLES = ("admin", "manager", "technician", "requester")
STAFF_ROLES = ("admin", "manager", "technician")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(128), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), default="requester", nullable=False)

    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    is_business_reviewer = Column(Boolean, default=False, nullable=False)
    is_kasda_user = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Technician profile
    workload_capacity = Column(Integer, default=5, nullable=False)
    primary_skill = Column(String(64), nullable=True)
    experience_level = Column(String(32), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    department = relationship("Department")
    unit = relationship("Unit")
    manager = relationship("User", remote_side=[id])

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
