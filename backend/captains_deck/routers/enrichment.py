"""
Router de l'import magique : pré-remplissage d'une option depuis une URL.
"""

import logging

from fastapi import APIRouter, Depends

from captains_deck.dependencies import get_enrichment_service
from captains_deck.schemas.enrichment import EnrichmentRequest, EnrichmentResult
from captains_deck.security import Principal, get_principal
from captains_deck.services.enrichment import EnrichmentService
from captains_deck.services.roles import Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/enrichment", tags=["Import magique"])


@router.post("/preview", response_model=EnrichmentResult, summary="Pré-remplir une option depuis une URL")
async def preview(
    data: EnrichmentRequest,
    service: EnrichmentService = Depends(get_enrichment_service),
    principal: Principal = Depends(get_principal),
):
    """
    Retourne le formulaire complété avec les champs trouvés sur la page.
    Rien n'est enregistré : le capitaine valide ensuite via POST /yachts.
    """
    if principal.role is not Role.CAPTAIN:
        logger.debug("Import magique ignoré pour un invité")
        return EnrichmentResult(ok=False, fields=data.current)
    return await service.enrich(data.url, data.current, actor_id=principal.uid)
