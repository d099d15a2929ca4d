from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from board_engine import BoardEngine
from room_registry import RoomRegistry
from socket_manager import SocketManager

logger = logging.getLogger(__name__)

board_engine = BoardEngine(source_path=config.QUESTION_BANK_PATH, source_url=config.QUESTION_BANK_URL)
registry = RoomRegistry(board_engine)
socket_manager = SocketManager(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Jeopardy Live backend")
    board_engine.load()
    yield
    logger.info("Shutting down Jeopardy Live backend (%d rooms live)", len(registry))


app = FastAPI(title="Jeopardy Live Backend", lifespan=lifespan)


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


@app.get("/system/info")
async def get_system_info():
    return {"ip": get_local_ip()}


@app.get("/debug/bank")
async def debug_bank():
    """Question bank inventory per category and difficulty."""
    return {"loaded": len(board_engine.questions), "counts": board_engine.bank_counts()}


@app.get("/rooms/{room_code}")
async def room_status(room_code: str):
    room = registry.get(room_code)
    if room is None:
        return {"code": room_code.strip().upper(), "exists": False, "playerCount": 0}
    return {"code": room.code, "exists": True, "playerCount": len(room.players)}


@app.websocket("/ws/{client_id}")
async def websocket_endpoint(websocket: WebSocket, client_id: str):
    await socket_manager.connect(websocket, client_id)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    socket_manager.allowed_origins = origins
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        f"http://{local_ip}:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Jeopardy Live API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "rooms": len(registry)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
