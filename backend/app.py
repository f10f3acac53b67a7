import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

# Motor for MongoDB
import motor.motor_asyncio
from motor.motor_asyncio import AsyncIOMotorClient

from common.framing import decode_event
from .config import Settings
from .engine import ChatServer
from .store import Store
from .transport import Connection, client_address

logger = logging.getLogger(__name__)

settings = Settings.from_env()

app = FastAPI(title='ChatChat')

# Allow the frontend (vite dev server) to call REST endpoints
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# MongoDB client and chat server (initialized in startup event unless already set)
mongo_client: AsyncIOMotorClient = None
chat_server: ChatServer = None


@app.on_event("startup")
async def startup_event():
    global mongo_client, chat_server
    if chat_server is not None:
        return
    mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.mongo_url, tz_aware=True)
    store = Store(mongo_client[settings.database_name])
    await store.ping()
    await store.ensure_indexes()
    chat_server = ChatServer(store, settings)
    logger.info('connected to MongoDB database %s', settings.database_name)


@app.on_event("shutdown")
async def shutdown_event():
    global mongo_client
    if mongo_client:
        mongo_client.close()
        mongo_client = None


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    address = client_address(websocket)
    try:
        allowed = await chat_server.accepts(address)
    except PyMongoError:
        logger.exception('ban check failed for %s; refusing connection', address)
        allowed = False
    if not allowed:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    conn = Connection(websocket, address)
    conn.start()
    await chat_server.connect(conn)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get('code', 1000))
            text = message.get('text')
            if text is None:
                logger.debug('binary frame from %s dropped', conn.id)
                continue
            frame = decode_event(text)
            if frame is None:
                logger.debug('malformed frame from %s dropped', conn.id)
                continue
            event, data = frame
            await chat_server.dispatch(conn, event, data)
    except WebSocketDisconnect:
        pass
    finally:
        await chat_server.disconnect(conn)
        await conn.shutdown()


@app.get('/clients')
async def list_clients():
    names = await chat_server.online_usernames()
    return JSONResponse({'clients': names})


# static client bundle; mounted last so /ws and /clients win
app.mount('/', StaticFiles(directory=settings.public_dir, html=True, check_dir=False), name='public')


def main():
    import uvicorn
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
