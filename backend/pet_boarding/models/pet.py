"""
Pet model. Only read by the booking core for existence, ownership and
species-based pricing.
"""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from pet_boarding.db.base import Base, TimestampMixin


class Pet(Base, TimestampMixin):
    __tablename__ = "pets"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    species = Column(String(20), nullable=False)
    breed = Column(String(50), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    owner = relationship("User", back_populates="pets")

    def __repr__(self) -> str:
        return f"<Pet(id={self.id}, name={self.name}, owner={self.owner_id})>"
