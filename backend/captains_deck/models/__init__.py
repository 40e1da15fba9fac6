# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant l'appel à create_all().

from captains_deck.models.document import Document  # noqa: F401
from captains_deck.models.user import User  # noqa: F401
