"""
WebSocket live views

Each connection mounts one view over its own subscription group. A receiver
task turns client messages into commands on the group's queue; the consumer
loop below handles snapshots and commands one at a time and pushes the
rendered view after each. The group is cancelled however the connection ends.
"""

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from ..errors import CongregationError
from ..services.subscriptions import ViewSubscriptions
from ..views import VIEWS
from ..views.base import error_notice

logger = logging.getLogger(__name__)
router = APIRouter()


async def receive_commands(websocket: WebSocket, subscriptions: ViewSubscriptions):
    """Forward client messages to the view until the client goes away"""
    try:
        while True:
            text = await websocket.receive_text()
            try:
                command = json.loads(text)
            except ValueError:
                command = None
            if not isinstance(command, dict):
                command = {"type": None}
            subscriptions.post(command)
    except WebSocketDisconnect:
        pass
    finally:
        subscriptions.cancel_all()


async def run_view(websocket: WebSocket, view_name: str):
    app = websocket.app
    session_store = app.state.session_store
    token = websocket.query_params.get("token")

    session = session_store.resolve(token) if token else None
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()

    async with ViewSubscriptions(app.state.store, view_name) as subscriptions:
        view = VIEWS[view_name](
            app.state.store,
            session,
            app.state.settings,
            app.state.sweeper,
            subscriptions,
        )
        try:
            notices = view.mount()
        except CongregationError as e:
            logger.warning(f"View {view_name} refused for {session.user_id}: {e.message}")
            await websocket.send_json(error_notice(e.code, e.message))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        # Re-check the token whenever anyone signs in or out
        unsubscribe = session_store.on_auth_state_changed(
            lambda identity: loop.call_soon_threadsafe(subscriptions.post, {"type": "auth_changed"})
        )
        receiver = asyncio.create_task(receive_commands(websocket, subscriptions))
        logger.info(f"View {view_name} mounted for {session.user_id}")

        try:
            for notice in notices:
                await websocket.send_json(notice)

            async for event in subscriptions:
                if event.kind == "command":
                    command = event.payload
                    kind = command.get("type")
                    if kind == "ping":
                        await websocket.send_json({"type": "pong"})
                        continue
                    if kind == "auth_changed":
                        refreshed = session_store.resolve(token)
                        if refreshed is None:
                            await websocket.send_json(error_notice("auth/signed-out", "Your session has ended"))
                            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                            break
                        view.session = refreshed
                        view.identity = refreshed.identity
                        notices = []
                    else:
                        try:
                            notices = view.handle_command(command)
                        except CongregationError as e:
                            notices = [error_notice(e.code, e.message)]
                elif event.kind == "error":
                    logger.warning(f"View {view_name} lost subscription '{event.key}': {event.payload}")
                    notices = [error_notice(event.payload.code, event.payload.message)]
                else:
                    notices = view.on_snapshot(event.key)

                for notice in notices:
                    await websocket.send_json(notice)
                if subscriptions.ready:
                    await websocket.send_json({"type": "view", "view": view.name, "data": view.render()})
        except WebSocketDisconnect:
            pass
        finally:
            unsubscribe()
            receiver.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await receiver
            logger.info(f"View {view_name} closed for {session.user_id}")


@router.websocket("/ws/dashboard")
async def dashboard_view(websocket: WebSocket):
    await run_view(websocket, "dashboard")


@router.websocket("/ws/events")
async def events_view(websocket: WebSocket):
    await run_view(websocket, "events")


@router.websocket("/ws/roster")
async def roster_view(websocket: WebSocket):
    await run_view(websocket, "roster")


@router.websocket("/ws/teams")
async def teams_view(websocket: WebSocket):
    await run_view(websocket, "teams")


@router.websocket("/ws/admin")
async def admin_view(websocket: WebSocket):
    await run_view(websocket, "admin")
