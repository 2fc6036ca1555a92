# foodshare/routers/streaming.py
"""Pushes store snapshots down a WebSocket until either side goes away."""
from contextlib import aclosing
from typing import AsyncIterator, Callable, List

import anyio
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder


async def stream_snapshots(websocket: WebSocket, snapshots: AsyncIterator[List[dict]],
                           serialize: Callable[[dict], dict]) -> None:
    async with aclosing(snapshots) as feed:
        async with anyio.create_task_group() as tg:

            async def watch_disconnect():
                try:
                    while True:
                        await websocket.receive_text()
                except WebSocketDisconnect:
                    pass
                tg.cancel_scope.cancel()

            tg.start_soon(watch_disconnect)
            try:
                async for snapshot in feed:
                    await websocket.send_json(jsonable_encoder([serialize(d) for d in snapshot]))
            except WebSocketDisconnect:
                pass
            tg.cancel_scope.cancel()
