"""
WebSocket battlefield server.

Each connection gets its own battlefield session built from the data
directory and exchanges JSON messages of the form {"type": ...}.
"""

import os
import json
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

import websockets
from websockets.http11 import Response
from websockets.datastructures import Headers

from battlefield import BattlefieldSession, ForceManager, BattlefieldError, load_config
from game import cone_height_sampler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DATA_PATH = Path(os.environ.get("BATTLEFIELD_DATA", "data"))
SCENARIO = os.environ.get("BATTLEFIELD_SCENARIO", "kilimanjaro_skirmish")
ID_FIELDS = ("faction", "force_id", "hex_id")


def build_session(data_path: Path = DATA_PATH, scenario: str = SCENARIO) -> BattlefieldSession:
    """Fresh session for one connection."""
    config = load_config(data_path)
    forces = ForceManager()
    scenario_path = data_path / "scenarios" / f"{scenario}.yaml"
    if scenario_path.exists():
        forces.load_scenario(scenario_path)
    else:
        logger.warning(f"Scenario not found: {scenario_path}, starting with an empty map")

    session = BattlefieldSession.create(config, forces, height_sampler=cone_height_sampler())
    session.recompute_visibility()
    return session


def handle_message(session: BattlefieldSession, msg: dict) -> tuple[str, dict]:
    """Apply one client message and build the (type, payload) reply."""
    msg_type = msg.get("type", "")
    for key in ID_FIELDS:
        if msg.get(key) is not None and not isinstance(msg[key], str):
            return "error", {"message": f"{key} must be a string"}

    if msg_type == "get_state":
        return "state", session.get_state(msg.get("faction"))

    if msg_type == "get_hex":
        hex_state = session.get_hex_state(msg.get("hex_id"))
        if hex_state is None:
            return "error", {"message": f"Unknown hex: {msg.get('hex_id')}"}
        return "hex", hex_state

    if msg_type == "switch_faction":
        if not session.switch_faction(msg.get("faction")):
            return "error", {"message": f"Unknown faction: {msg.get('faction')}"}
        return "state", session.get_state()

    if msg_type == "move_force":
        if not session.move_force(msg.get("force_id"), msg.get("hex_id")):
            return "error", {"message": f"Cannot move {msg.get('force_id')} to {msg.get('hex_id')}"}
        return "state", session.get_state()

    if msg_type == "end_turn":
        session.end_turn()
        return "state", session.get_state()

    return "error", {"message": f"Unknown message type: {msg_type}"}


async def handle_websocket(websocket):
    """Handle a single WebSocket connection (one battlefield session)."""
    events = []

    async def send_json(msg_type: str, data: dict):
        await websocket.send(json.dumps({"type": msg_type, **data}, default=str))

    try:
        loop = asyncio.get_running_loop()
        try:
            session = await loop.run_in_executor(None, build_session)
        except BattlefieldError as e:
            await send_json("error", {"message": f"Cannot start battlefield: {e}"})
            return
        session.subscribe(lambda name, payload: events.append({"event": name, **payload}))

        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await send_json("error", {"message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await send_json("error", {"message": "Message must be a JSON object"})
                continue

            reply_type, payload = handle_message(session, msg)
            await send_json(reply_type, payload)

            # Push whatever the session announced while handling the message
            for event in events:
                await send_json("event", event)
            events.clear()

    except websockets.exceptions.ConnectionClosed:
        logger.info("Client disconnected")


def http_handler(connection, request):
    """Answer GET /health; anything else goes on to the WebSocket upgrade."""
    if request.path == "/health":
        body = json.dumps({"status": "ok", "scenario": SCENARIO}).encode()
        return Response(
            200,
            "OK",
            Headers([
                ("Content-Type", "application/json"),
                ("Content-Length", str(len(body))),
            ]),
            body,
        )
    return None


async def main():
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8080"))

    logger.info(f"Starting battlefield server on ws://{host}:{port}")

    async with websockets.serve(
        handle_websocket,
        host,
        port,
        process_request=http_handler,
        max_size=10 * 1024 * 1024,  # 10MB max message
    ):
        await asyncio.Future()  # run forever


if __name__ == "__main__":
    asyncio.run(main())
