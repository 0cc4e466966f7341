from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from courtside.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True)
    ranking = Column(Integer, default=0, nullable=False)  # 0 = unranked

    organized_tournaments = relationship("Tournament", back_populates="organizer")
    # Registrations reference users twice (player1/player2), so they are queried explicitly
    # rather than navigated from here.
