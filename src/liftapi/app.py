from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from typing import Dict, List, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from dispatch import get_scheduler
from liftsim import (
    Direction,
    FixedStepRunner,
    LiftConfig,
    World,
    deserialize_world,
    fast_forward,
    serialize_world,
)

logger = logging.getLogger(__name__)


class CallRequest(BaseModel):
    floor: int
    direction: Direction


class DestinationRequest(BaseModel):
    floor: int


class DispatchSelection(BaseModel):
    name: str


class SnapshotRestore(BaseModel):
    world: Dict[str, object]
    elapsed_s: float = Field(0.0, ge=0)


class SimulationManager:
    def __init__(
        self,
        config: Optional[LiftConfig] = None,
        tick_interval: float = 1.0 / 30.0,
        random_seed: Optional[int] = None,
    ) -> None:
        self.config = config or LiftConfig()
        self.world = World(config=self.config, random_seed=random_seed)
        self.runner = FixedStepRunner(self.world)
        self.tick_interval = tick_interval
        self.clients: Set[WebSocket] = set()
        self.notifications: List[dict] = []
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._watch(self.world)

    def _watch(self, world: World) -> None:
        for event in ("call", "door", "arrived", "boarded", "exited", "alarm", "emergency"):
            world.on_event(event, self._collector(event))

    def _collector(self, event: str):
        def collect(payload: dict) -> None:
            self.notifications.append({"event": event, **payload})

        return collect

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        last = time.monotonic()
        while True:
            now = time.monotonic()
            async with self._lock:
                self.runner.feed(now - last)
                payload = self.current_state()
            last = now
            await self.broadcast(payload)
            await asyncio.sleep(self.tick_interval)

    async def broadcast(self, payload: dict) -> None:
        message = json.dumps(payload)
        disconnected: Set[WebSocket] = set()
        for client in set(self.clients):
            try:
                await client.send_text(message)
            except WebSocketDisconnect:
                disconnected.add(client)
        for client in disconnected:
            await self.unregister(client)

    async def register(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.add(websocket)
        await websocket.send_text(json.dumps(self.current_state()))

    async def unregister(self, websocket: WebSocket) -> None:
        if websocket in self.clients:
            self.clients.remove(websocket)
        with contextlib.suppress(Exception):
            await websocket.close()

    def current_state(self) -> dict:
        events, self.notifications = self.notifications, []
        return {
            "ticks": self.world.ticks,
            "world": self.world.status(),
            "events": events,
            "log": list(self.world.logs)[:20],
        }

    async def command(self, name: str, *args) -> dict:
        async with self._lock:
            result = getattr(self.world, name)(*args)
            state = self.current_state()
        state["ok"] = bool(result)
        return state

    async def submit_call(self, floor: int, direction: Direction) -> dict:
        async with self._lock:
            call = self.world.submit_call(floor, direction)
            state = self.current_state()
        state["ok"] = call is not None
        state["call"] = call.to_dict() if call is not None else None
        return state

    async def set_dispatcher(self, name: str) -> dict:
        async with self._lock:
            self.world.dispatcher = get_scheduler(name)
            self.world.log(f"Dispatch policy set to {name}")
            return self.current_state()

    async def snapshot(self) -> dict:
        async with self._lock:
            return serialize_world(self.world)

    async def restore(self, data: dict, elapsed_s: float) -> dict:
        async with self._lock:
            self.world = deserialize_world(data, config=self.config)
            self.runner = FixedStepRunner(self.world)
            self._watch(self.world)
            replayed = fast_forward(self.world, elapsed_s)
            logger.info("restored snapshot, replayed %.0fs", replayed)
            state = self.current_state()
        state["fast_forwarded_s"] = replayed
        return state


manager = SimulationManager()


@contextlib.asynccontextmanager
async def lifespan(_: FastAPI):
    # Stop the same manager that was started.
    running = manager
    await running.start()
    try:
        yield
    finally:
        await running.stop()


app = FastAPI(title="OnlyLift Simulation API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/state")
async def get_state() -> dict:
    return manager.current_state()


@app.post("/calls")
async def submit_call(request: CallRequest) -> dict:
    return await manager.submit_call(request.floor, request.direction)


@app.post("/dispatch")
async def set_dispatcher(selection: DispatchSelection) -> dict:
    try:
        return await manager.set_dispatcher(selection.name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.post("/cabin/destination")
async def request_destination(request: DestinationRequest) -> dict:
    return await manager.command("request_destination", request.floor)


@app.post("/doors/open")
async def open_doors() -> dict:
    return await manager.command("open_doors")


@app.post("/doors/close")
async def close_doors() -> dict:
    return await manager.command("close_doors")


@app.post("/passenger/enter")
async def enter_passenger() -> dict:
    return await manager.command("enter_passenger")


@app.post("/passenger/exit")
async def exit_passenger() -> dict:
    return await manager.command("exit_passenger")


@app.post("/alarm")
async def trigger_alarm() -> dict:
    return await manager.command("trigger_alarm")


@app.post("/emergency")
async def emergency_stop() -> dict:
    return await manager.command("emergency_stop")


@app.post("/emergency/acknowledge")
async def acknowledge_emergency() -> dict:
    return await manager.command("acknowledge_emergency")


@app.get("/snapshot")
async def get_snapshot() -> dict:
    return await manager.snapshot()


@app.post("/snapshot")
async def restore_snapshot(request: SnapshotRestore) -> dict:
    return await manager.restore(request.world, request.elapsed_s)


@app.websocket("/ws/stream")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await manager.register(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.unregister(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("liftapi.app:app", host="0.0.0.0", port=8000, reload=False)
