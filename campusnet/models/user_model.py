from sqlalchemy import Column, Integer, String, DateTime, func

from campusnet.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    role = Column(String, default="GENERAL", nullable=False)  # GENERAL or ADMIN
    email = Column(String, unique=True, index=True, nullable=True)

    registered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
