from fastapi import APIRouter, Depends, Request, WebSocket
from .. import auth, database
from ..chat import ChatProtocol, Connection, identity_from_config
from ..config import CHAT_IDENTITY
from ..errors import ValidationError
from ..messages import MessageStore
from ..protocols import mqtt_handler
from ..templating import templates

router = APIRouter()

chat_protocol = ChatProtocol(
    MessageStore(database.SessionLocal),
    identity=identity_from_config(CHAT_IDENTITY),
    mirror=mqtt_handler,
)


@router.get("/chat")
def chat_page(request: Request, user: dict = Depends(auth.require_user)):
    return templates.TemplateResponse(request, "chat.html", {"username": user["username"]})

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    session = websocket.scope.get("session") or {}
    connection = Connection(websocket, session_username=session.get("username"))
    await chat_protocol.open(connection)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                chat_protocol.reporter.report("frame", ValidationError("Binary frames are not supported"))
                continue
            await chat_protocol.handle(connection, text)
    finally:
        await chat_protocol.close(connection)
