"""
Résultat uniforme des mutations : succès booléen + message optionnel.
Aucune erreur de store ou de réseau ne remonte au-delà de ce contrat.
"""

from typing import Optional

from pydantic import BaseModel


class MutationResult(BaseModel):
    ok: bool
    id: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, id: Optional[str] = None) -> "MutationResult":
        return cls(ok=True, id=id)

    @classmethod
    def failure(cls, message: str) -> "MutationResult":
        return cls(ok=False, message=message)

    @classmethod
    def denied(cls) -> "MutationResult":
        """Refus silencieux (rôle invité) : pas de message pour l'utilisateur."""
        return cls(ok=False)
