"""Realtime support chat WebSocket endpoint"""

from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    """
    Support chat socket. Authenticate with an `authenticate` event first;
    see app.realtime.gateway for the event protocol.
    """
    gateway = websocket.app.state.chat_gateway
    await gateway.serve(websocket)
