"""WebSocket endpoint for live readings and query requests."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect


def create_router() -> APIRouter:
    router = APIRouter(tags=["live"])

    @router.websocket("/ws")
    async def live_socket(websocket: WebSocket):
        hub = websocket.app.state.hub
        await websocket.accept()
        state = hub.connect(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                await hub.handle_message(state, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await hub.disconnect(state)

    return router
