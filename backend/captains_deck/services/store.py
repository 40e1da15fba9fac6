"""
Store documentaire partagé avec abonnements en continu.

Contrat :
- documents adressés par un chemin hiérarchique collection/id
  ("trips/{tripId}", "trips/{tripId}/yachts/{yachtId}", "settings/global_settings")
- subscribe(path) ouvre un canal long : snapshot initial complet, puis un
  snapshot complet après chaque changement, jusqu'à close()
- create / update / set / delete écrivent dans le store ; les miroirs locaux ne
  sont jamais modifiés directement, seul l'écho de l'abonnement les met à jour
- SERVER_TIMESTAMP est résolu par le store au moment de l'écriture

Au sein d'un même canal, les snapshots arrivent dans l'ordre d'application des
écritures. Aucun ordre n'est garanti entre deux canaux différents.
"""

import asyncio
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from captains_deck.models.document import Document

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Écriture ou lecture refusée / impossible côté store."""


class DocumentNotFoundError(StoreError):
    """update() sur un document inexistant."""


class SubscriptionClosed(Exception):
    """Le canal a été fermé par son consommateur."""


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


# --- Chemins ---

TRIPS = "trips"
SETTINGS_DOC = "settings/global_settings"


def trip_path(trip_id: str) -> str:
    return f"{TRIPS}/{trip_id}"


def yachts_path(trip_id: str) -> str:
    return f"{TRIPS}/{trip_id}/yachts"


def yacht_path(trip_id: str, yacht_id: str) -> str:
    return f"{yachts_path(trip_id)}/{yacht_id}"


def payments_path(trip_id: str) -> str:
    return f"{TRIPS}/{trip_id}/payments"


def payment_path(trip_id: str, payment_id: str) -> str:
    return f"{payments_path(trip_id)}/{payment_id}"


def split_path(path: str) -> List[str]:
    segments = [s for s in (path or "").strip("/").split("/") if s]
    if not segments:
        raise StoreError(f"Chemin invalide : {path!r}")
    return segments


def is_document_path(path: str) -> bool:
    """Un nombre pair de segments désigne un document, impair une collection."""
    return len(split_path(path)) % 2 == 0


def parent_and_id(doc_path: str) -> Tuple[str, str]:
    segments = split_path(doc_path)
    if len(segments) % 2:
        raise StoreError(f"Chemin de document attendu : {doc_path!r}")
    return "/".join(segments[:-1]), segments[-1]


# --- Snapshots & abonnements ---

@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)
    exists: bool = True


@dataclass(frozen=True)
class QuerySnapshot:
    path: str
    docs: List[DocumentSnapshot] = field(default_factory=list)


Snapshot = Union[DocumentSnapshot, QuerySnapshot]

_CLOSED = object()


class Subscription:
    """
    Canal d'abonnement annulable. Le consommateur lit les snapshots avec
    `await sub.get()` ou `async for snapshot in sub` et libère le canal avec close().
    Après close(), plus aucun snapshot n'est délivré, même s'il était déjà en file.
    """

    def __init__(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.path = path
        self.order_by = order_by
        self.descending = descending
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, snapshot: Snapshot) -> None:
        if not self._closed:
            self._queue.put_nowait(snapshot)

    async def get(self) -> Snapshot:
        if self._closed:
            raise SubscriptionClosed(self.path)
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise SubscriptionClosed(self.path)
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)  # réveille un get() en attente
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class SharedStore(Protocol):
    def subscribe(self, path: str, order_by: Optional[str] = None, descending: bool = False) -> Subscription:
        ...

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        ...

    async def update(self, doc_path: str, fields: Dict[str, Any]) -> None:
        ...

    async def set(self, doc_path: str, fields: Dict[str, Any], merge: bool = True) -> None:
        ...

    async def delete(self, doc_path: str) -> None:
        ...


# --- Implémentation SQLAlchemy ---

class DocumentStore:
    """
    Store documentaire persistant (table `documents`, contenu JSON) avec
    diffusion en mémoire vers les abonnés du même processus.

    Toutes les méthodes s'exécutent sur la boucle asyncio de l'application, y
    compris les appels SQLAlchemy (synchrones) : l'écriture et la diffusion
    restent ainsi dans l'ordre d'application. Ce mode est prévu pour SQLite
    (fichier local ou mémoire), où une requête ne bloque la boucle que quelques
    microsecondes. Avec un serveur de base distant, une requête lente gèle tous
    les websockets : un avertissement est journalisé au démarrage.
    """

    def __init__(self, session_factory: sessionmaker, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        bind = session_factory.kw.get("bind")
        dialect = getattr(getattr(bind, "dialect", None), "name", None)
        if dialect is not None and dialect != "sqlite":
            logger.warning(
                "Store documentaire sur %s : les requêtes SQL s'exécutent sur la boucle asyncio, "
                "une base lente bloquera les abonnements en direct",
                dialect,
            )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._subscriptions: Dict[str, List[Subscription]] = {}

    @property
    def subscription_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def subscribe(self, path: str, order_by: Optional[str] = None, descending: bool = False) -> Subscription:
        normalized = "/".join(split_path(path))
        sub = Subscription(normalized, order_by=order_by, descending=descending, on_close=self._release)
        self._subscriptions.setdefault(normalized, []).append(sub)
        try:
            sub.push(self._snapshot(sub))
        except StoreError as exc:
            # Vue vide mais canal ouvert : le prochain changement la rattrapera
            logger.error("Snapshot initial impossible pour %s : %s", normalized, exc)
        logger.debug("Abonnement ouvert : %s (%d actifs)", normalized, self.subscription_count)
        return sub

    def _release(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.path, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscriptions.pop(sub.path, None)
        logger.debug("Abonnement fermé : %s (%d actifs)", sub.path, self.subscription_count)

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        if is_document_path(collection_path):
            raise StoreError(f"Chemin de collection attendu : {collection_path!r}")
        collection = "/".join(split_path(collection_path))
        doc_id = uuid.uuid4().hex[:20]
        with self._session() as db:
            db.add(Document(collection=collection, doc_id=doc_id, data=self._resolve(fields)))
        self._notify(collection, doc_id)
        return doc_id

    async def update(self, doc_path: str, fields: Dict[str, Any]) -> None:
        collection, doc_id = parent_and_id(doc_path)
        with self._session() as db:
            row = self._get_row(db, collection, doc_id)
            if row is None:
                raise DocumentNotFoundError(f"Document introuvable : {doc_path}")
            # Réassignation (et non mutation en place) pour que SQLAlchemy détecte le changement
            row.data = {**(row.data or {}), **self._resolve(fields)}
        self._notify(collection, doc_id)

    async def set(self, doc_path: str, fields: Dict[str, Any], merge: bool = True) -> None:
        collection, doc_id = parent_and_id(doc_path)
        with self._session() as db:
            row = self._get_row(db, collection, doc_id)
            resolved = self._resolve(fields)
            if row is None:
                db.add(Document(collection=collection, doc_id=doc_id, data=resolved))
            elif merge:
                row.data = {**(row.data or {}), **resolved}
            else:
                row.data = resolved
        self._notify(collection, doc_id)

    async def delete(self, doc_path: str) -> None:
        collection, doc_id = parent_and_id(doc_path)
        with self._session() as db:
            row = self._get_row(db, collection, doc_id)
            if row is None:
                return
            db.delete(row)
        self._notify(collection, doc_id)

    # --- interne ---

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(str(exc)) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _get_row(db: Session, collection: str, doc_id: str) -> Optional[Document]:
        return db.execute(
            select(Document).where(Document.collection == collection, Document.doc_id == doc_id)
        ).scalar()

    def _resolve(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = self._clock().isoformat()
        return {key: (now if value is SERVER_TIMESTAMP else value) for key, value in fields.items()}

    def _notify(self, collection: str, doc_id: str) -> None:
        doc_path = f"{collection}/{doc_id}"
        for path in (doc_path, collection):
            for sub in list(self._subscriptions.get(path, [])):
                try:
                    sub.push(self._snapshot(sub))
                except StoreError as exc:
                    logger.error("Diffusion impossible pour %s : %s", path, exc)

    def _snapshot(self, sub: Subscription) -> Snapshot:
        if is_document_path(sub.path):
            collection, doc_id = parent_and_id(sub.path)
            with self._session() as db:
                row = self._get_row(db, collection, doc_id)
                if row is None:
                    return DocumentSnapshot(id=doc_id, path=sub.path, data={}, exists=False)
                return DocumentSnapshot(id=doc_id, path=sub.path, data=dict(row.data or {}))

        with self._session() as db:
            rows = db.execute(
                select(Document).where(Document.collection == sub.path).order_by(Document.id)
            ).scalars().all()
            docs = [
                DocumentSnapshot(id=row.doc_id, path=f"{sub.path}/{row.doc_id}", data=dict(row.data or {}))
                for row in rows
            ]

        if sub.order_by:
            # Les documents sans le champ de tri restent en fin de liste en ordre décroissant
            docs = sorted(
                docs,
                key=lambda d: (d.data.get(sub.order_by) is not None, str(d.data.get(sub.order_by) or "")),
                reverse=sub.descending,
            )
        return QuerySnapshot(path=sub.path, docs=docs)


async def read_once(store: SharedStore, path: str, timeout: float = 5.0, **kwargs) -> Snapshot:
    """Lecture ponctuelle construite sur subscribe : premier snapshot puis fermeture."""
    sub = store.subscribe(path, **kwargs)
    try:
        return await asyncio.wait_for(sub.get(), timeout)
    finally:
        sub.close()
