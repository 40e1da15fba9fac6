"""
Import magique d'une fiche bateau depuis une URL collée par le capitaine.

Best-effort : la page est récupérée par une liste ordonnée de stratégies
(accès direct, puis proxys), la première qui réussit l'emporte. Si toutes
échouent, le résultat est marqué `unavailable` et l'erreur s'affiche
brièvement côté client ; aucune exception ne remonte.

Les champs extraits ne remplissent que les champs encore vides du formulaire.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set, Tuple
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from captains_deck.schemas.enrichment import EnrichmentResult
from captains_deck.schemas.yacht import YachtForm
from captains_deck.services.money import parse_money

logger = logging.getLogger(__name__)

ALLORIGINS_URL = "https://api.allorigins.win/get?url={url}"
CORSPROXY_URL = "https://corsproxy.io/?{url}"
NAUSYS_SPECS_URL = "https://ws.nausys.com/CBMS-external/rest/yacht/{id}/html"
NAUSYS_PICTURE_URL = "https://ws.nausys.com/CBMS-external/rest/yacht/{id}/pictures/main.jpg"

PRICE_PATTERN = re.compile(r"([\d\s]+[,.]\d{2})")
IMAGE_ID_PATTERN = re.compile(r"yacht/(\d+)/")
LINK_ID_PATTERN = re.compile(r"(?:yacht/|yachtId=|id=)(\d+)")
FIRST_INTEGER = re.compile(r"(\d+)")

CHARTER_LABELS = ("charter package", "transit log")
MARINA_LABELS = ("marína", "marina", "port")
CAPACITY_LABELS = ("počet lůžek", "berths", "guests", "capacity", "lůžek")

Fetcher = Callable[[httpx.AsyncClient, str], Awaitable[Optional[str]]]


# --- Stratégies de récupération ---

async def _fetch_direct(client: httpx.AsyncClient, url: str) -> Optional[str]:
    response = await client.get(url)
    if response.status_code >= 400:
        return None
    return response.text


async def _fetch_allorigins(client: httpx.AsyncClient, url: str) -> Optional[str]:
    # Proxy JSON : la page est dans le champ `contents`
    response = await client.get(ALLORIGINS_URL.format(url=quote(url, safe="")))
    if response.status_code >= 400:
        return None
    data = response.json() or {}
    return data.get("contents")


async def _fetch_corsproxy(client: httpx.AsyncClient, url: str) -> Optional[str]:
    response = await client.get(CORSPROXY_URL.format(url=quote(url, safe="")))
    if response.status_code >= 400:
        return None
    return response.text


STRATEGIES: Dict[str, Fetcher] = {
    "direct": _fetch_direct,
    "allorigins": _fetch_allorigins,
    "corsproxy": _fetch_corsproxy,
}


# --- Extraction ---

def guess_image_from_link(url: str) -> Optional[str]:
    """Les liens NauSYS / Booking Manager donnent l'image principale sans scraping."""
    lowered = (url or "").lower()
    if "nausys" not in lowered and "booking-manager" not in lowered:
        return None
    match = LINK_ID_PATTERN.search(url)
    return NAUSYS_PICTURE_URL.format(id=match.group(1)) if match else None


def _meta_content(soup: BeautifulSoup, prop: str) -> str:
    tag = soup.find("meta", attrs={"property": prop})
    return (tag.get("content") or "").strip() if tag else ""


def _contains_any(text: str, labels: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(label in lowered for label in labels)


def extract_fields(html: str) -> Dict[str, Any]:
    """
    Extrait les champs d'une fiche bateau (heuristiques structurelles, premier
    élément correspondant). Les champs introuvables sont simplement omis.
    Les clés sont celles de YachtForm.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    fields: Dict[str, Any] = {}

    header = soup.select_one("h1.yacht-name-header")
    name = header.get_text(strip=True) if header else ""
    if not name:
        name = _meta_content(soup, "og:title")
    if name:
        fields["name"] = name

    image = _meta_content(soup, "og:image")
    if image:
        fields["image_url"] = image
        match = IMAGE_ID_PATTERN.search(image)
        if match:
            fields["details_link"] = NAUSYS_SPECS_URL.format(id=match.group(1))

    price_el = soup.select_one(".price-after-discount")
    if price_el:
        match = PRICE_PATTERN.search(price_el.get_text())
        price = parse_money(match.group(1)) if match else 0.0
        if price > 0:
            fields["price"] = price

    label = next(
        (el for el in soup.find_all(True) if el.find(True) is None and _contains_any(el.get_text(), CHARTER_LABELS)),
        None,
    )
    if label is not None:
        row = label if "row" in (label.get("class") or []) else label.find_parent(class_="row")
        bold = row.find("b") if row is not None else None
        charter_pack = parse_money(bold.get_text()) if bold else 0.0
        if charter_pack > 0:
            fields["charter_pack"] = charter_pack

    marina_p = next(
        (p for p in soup.find_all("p") if p.find("b") and _contains_any(p.find("b").get_text(), MARINA_LABELS)),
        None,
    )
    if marina_p is not None:
        text = marina_p.get_text()
        if ":" in text:
            marina = text.split(":", 1)[1].strip()
            if marina:
                fields["marina"] = marina

    capacity_dt = next((dt for dt in soup.find_all("dt") if _contains_any(dt.get_text(), CAPACITY_LABELS)), None)
    if capacity_dt is not None:
        dd = capacity_dt.find_next_sibling()
        if dd is not None and dd.name == "dd":
            match = FIRST_INTEGER.search(dd.get_text())
            if match and int(match.group(1)) > 0:
                fields["max_guests"] = int(match.group(1))

    return fields


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def merge_fields(current: YachtForm, extracted: Dict[str, Any], url: str) -> YachtForm:
    """Une valeur extraite ne remplace jamais une saisie ; le lien reçoit toujours l'URL collée."""
    data = current.model_dump()
    for key, value in extracted.items():
        if key in data and _is_empty(data[key]):
            data[key] = value
    data["link"] = url
    return YachtForm.model_validate(data)


# --- Service ---

class EnrichmentService:
    def __init__(
        self,
        strategies: Iterable[str] = ("direct", "allorigins", "corsproxy"),
        timeout: float = 10.0,
        error_display_seconds: int = 3,
    ):
        self.strategies = list(strategies)
        unknown = [name for name in self.strategies if name not in STRATEGIES]
        if unknown:
            raise ValueError(f"Stratégies de récupération inconnues : {', '.join(unknown)}")
        self.timeout = timeout
        self.error_display_seconds = error_display_seconds
        self._fetching: Set[Optional[str]] = set()

    def is_fetching(self, actor_id: Optional[str] = None) -> bool:
        return actor_id in self._fetching

    async def fetch_html(self, url: str) -> Tuple[Optional[str], Optional[str]]:
        """Essaie chaque stratégie dans l'ordre ; retourne (html, stratégie) ou (None, None)."""
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            for name in self.strategies:
                try:
                    html = await STRATEGIES[name](client, url)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Récupération %s échouée pour %s : %s", name, url, exc)
                    continue
                if html:
                    return html, name
                logger.warning("Récupération %s sans contenu pour %s", name, url)
        return None, None

    async def enrich(
        self, url: str, current: Optional[YachtForm] = None, actor_id: Optional[str] = None
    ) -> EnrichmentResult:
        current = current or YachtForm()
        url = (url or "").strip()
        if not url:
            return EnrichmentResult(ok=False, fields=current)
        if actor_id in self._fetching:
            logger.info("Import déjà en cours pour %s, %s ignoré", actor_id, url)
            return EnrichmentResult(ok=False, fields=current, busy=True)

        self._fetching.add(actor_id)
        try:
            html, source = await self.fetch_html(url)
        finally:
            self._fetching.discard(actor_id)

        guessed = {}
        image = guess_image_from_link(url)
        if image:
            guessed["image_url"] = image

        if html is None:
            logger.warning("Import impossible pour %s : toutes les stratégies ont échoué", url)
            return EnrichmentResult(
                ok=False,
                fields=merge_fields(current, guessed, url),
                unavailable=True,
                error_display_seconds=self.error_display_seconds,
            )

        extracted = {**guessed, **extract_fields(html)}
        logger.info("Import %s via %s : %s", url, source, ", ".join(sorted(extracted)) or "aucun champ")
        return EnrichmentResult(ok=True, fields=merge_fields(current, extracted, url), source=source)
