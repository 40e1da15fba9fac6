"""
Modèle SQLAlchemy du store documentaire.

Chaque document est adressé par son chemin hiérarchique :
- collection : chemin de la collection parente (ex. "trips/abc123/yachts")
- doc_id     : identifiant opaque dans cette collection
Le contenu est un objet JSON libre (champs en camelCase).
"""

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint, func

from captains_deck.database import Base


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_id", name="uq_documents_path"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(512), nullable=False, index=True)
    doc_id = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
