"""
Modèle SQLAlchemy pour les comptes capitaine.
Les invités sont anonymes et ne sont jamais persistés.
"""

import uuid

from sqlalchemy import Column, DateTime, String, func

from captains_deck.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
