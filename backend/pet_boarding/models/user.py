"""
User model. Users own pets and act as boarding hosts.
"""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from pet_boarding.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)

    # Relationships
    pets = relationship("Pet", back_populates="owner")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"
