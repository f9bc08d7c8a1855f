"""HTTP control surface and server-sent event feed.

POST /start {url?, mic?, device?}, POST /stop, GET /status, GET /devices and
GET /events (text/event-stream, one JSON message per ``data:`` frame; the
first frame is always an analytics snapshot).
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from talk_time.adapters.console_printer import ConsoleTranscriptPrinter
from talk_time.domain.coordinator import SessionCoordinator
from talk_time.domain.errors import InvalidStartRequest, SessionStartError
from talk_time.domain.session import StartRequest
from talk_time.ports.devices import DeviceListerPort

logger = logging.getLogger(__name__)


class StartBody(BaseModel):
    url: str | None = None
    mic: bool = False
    device: str | None = None

    def to_request(self) -> StartRequest:
        return StartRequest(use_microphone=self.mic, remote_url=self.url, device_id=self.device)


def format_sse(message: dict) -> str:
    return f"data: {json.dumps(message)}\n\n"


def create_app(
    coordinator: SessionCoordinator,
    device_lister: DeviceListerPort,
    autostart: StartRequest | None = None,
    print_transcript: bool = False,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        tasks = [asyncio.create_task(coordinator.run())]
        if print_transcript:
            printer = ConsoleTranscriptPrinter()
            tasks.append(asyncio.create_task(printer.run(coordinator.subscribe())))
        if autostart is not None:
            try:
                await coordinator.start(autostart)
            except SessionStartError as exc:
                logger.error("Auto-start failed: %s", exc)
        try:
            yield
        finally:
            logger.info("Shutting down...")
            coordinator.close_subscribers()
            await coordinator.stop()
            for task in tasks:
                task.cancel()
            for task in tasks:
                try:
                    await asyncio.wait_for(task, timeout=1.0)
                except (asyncio.CancelledError, asyncio.TimeoutError):
                    pass

    app = FastAPI(title="talk-time", lifespan=lifespan)

    @app.get("/status")
    async def status() -> dict:
        return coordinator.snapshot().to_message()

    @app.post("/start")
    async def start(body: StartBody | None = None):
        request = (body or StartBody()).to_request()
        try:
            platform = await coordinator.start(request)
        except InvalidStartRequest as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        except SessionStartError as exc:
            logger.error("Failed to start session: %s", exc)
            return JSONResponse(status_code=500, content={"error": str(exc) or "failed to start"})
        return {"ok": True, "platform": platform}

    @app.post("/stop")
    async def stop() -> dict:
        await coordinator.stop()
        return {"ok": True}

    @app.get("/devices")
    async def devices() -> dict:
        found = await device_lister.list_devices()
        return {"devices": [device.to_dict() for device in found]}

    @app.get("/events")
    async def events(request: Request) -> StreamingResponse:
        subscription = coordinator.subscribe()

        async def event_stream():
            try:
                async for message in subscription:
                    if await request.is_disconnected():
                        break
                    yield format_sse(message)
            finally:
                subscription.close()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return app


class ControlServer(uvicorn.Server):
    """uvicorn server that ends open /events streams when shutdown begins.

    uvicorn waits for in-flight responses before running the lifespan
    shutdown, and an event feed never finishes on its own.
    """

    def __init__(self, config: uvicorn.Config, coordinator: SessionCoordinator) -> None:
        super().__init__(config)
        self._coordinator = coordinator

    async def shutdown(self, sockets=None) -> None:
        self._coordinator.close_subscribers()
        await super().shutdown(sockets=sockets)
