"""
Websocket de la vue voyage en direct.

À la connexion, une TripView est ouverte pour ce client ; chaque changement
des miroirs (écho du store) pousse une nouvelle TripViewSnapshot. Le client
peut envoyer {"guestCount": n} ou {"search": "..."} pour recalculer sa vue.
La vue est libérée à la déconnexion.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from captains_deck.security import principal_from_token
from captains_deck.services.roles import Role
from captains_deck.services.trip_sync import TripView

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Temps réel"])


async def _send_view(websocket: WebSocket, view: TripView, role: Role, search: str) -> None:
    snapshot = view.snapshot(role, search)
    await websocket.send_json(snapshot.model_dump(mode="json", by_alias=True))


async def _push_changes(websocket: WebSocket, view: TripView, role: Role, options: dict) -> None:
    await view.wait_for(lambda v: v.ready)
    version = view.version
    await _send_view(websocket, view, role, options["search"])
    while not view.closed:
        version = await view.wait_for_change(version)
        if view.closed:
            break
        await _send_view(websocket, view, role, options["search"])


@router.websocket("/api/v1/trips/{trip_id}/live")
async def trip_live(
    websocket: WebSocket,
    trip_id: str,
    token: Optional[str] = None,
    guest_count: Optional[int] = None,
    search: str = "",
):
    settings = websocket.app.state.settings
    try:
        principal = principal_from_token(token, settings)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    options = {"search": search}
    view = TripView(websocket.app.state.store, trip_id, settings.DEFAULT_GUEST_COUNT, settings.DEFAULT_EXCHANGE_RATE)
    if guest_count is not None:
        view.set_guest_count(guest_count)

    async with view:
        pusher = asyncio.create_task(_push_changes(websocket, view, principal.role, options))
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except ValueError:
                    logger.warning("Message websocket illisible ignoré (voyage %s)", trip_id)
                    continue
                if not isinstance(message, dict):
                    continue
                if "guestCount" in message:
                    view.set_guest_count(message["guestCount"])
                if "search" in message:
                    options["search"] = str(message["search"] or "")
                await _send_view(websocket, view, principal.role, options["search"])
        except WebSocketDisconnect:
            logger.debug("Client déconnecté du voyage %s", trip_id)
        finally:
            pusher.cancel()
            await asyncio.gather(pusher, return_exceptions=True)
