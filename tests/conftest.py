from __future__ import annotations

import json
import socket
import struct
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from nbtlib import Byte, Compound, File, Float, Int, String

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TEST_UUID = "6f003e33-7076-4e45-a270-87841b218ec7"


# ============================================================================
# World save fixtures
# ============================================================================


def write_nbt(path: Path, root: Dict[str, Any]) -> None:
    File(root).save(str(path), gzipped=True)


def write_json(path: Path, content: Any) -> None:
    path.write_text(json.dumps(content), encoding="utf-8")


def make_world(
    root: Path,
    version: str,
    stats: Any,
    uuid: str = TEST_UUID,
    advancements: Optional[Dict[str, Any]] = None,
    player: Optional[Dict[str, Any]] = None,
) -> Path:
    for sub in ("stats", "playerdata", "advancements"):
        (root / sub).mkdir(parents=True, exist_ok=True)

    write_nbt(
        root / "level.dat",
        {
            "Data": Compound(
                {
                    "Version": Compound(
                        {"Id": Int(3465), "Name": String(version), "Snapshot": Byte(0)}
                    ),
                    "version": Int(19133),
                }
            )
        },
    )
    write_json(root / "stats" / f"{uuid}.json", stats)
    write_json(
        root / "advancements" / f"{uuid}.json",
        advancements
        if advancements is not None
        else {
            "minecraft:story/root": {"criteria": {}, "done": True},
            "minecraft:story/mine_stone": {"criteria": {}, "done": False},
            "DataVersion": 3465,
        },
    )
    write_nbt(
        root / "playerdata" / f"{uuid}.dat",
        player
        if player is not None
        else {
            "XpTotal": Int(38),
            "XpLevel": Int(3),
            "Score": Int(850),
            "Health": Float(20.0),
            "foodLevel": Int(20),
        },
    )
    return root


@pytest.fixture()
def world_factory(tmp_path: Path) -> Callable[..., Path]:
    def factory(version: str, stats: Any, name: str = "world", **kwargs: Any) -> Path:
        return make_world(tmp_path / name, version, stats, **kwargs)

    return factory


# ============================================================================
# Fake collaborators
# ============================================================================


class FakeConnection:
    """Stands in for an mcrcon connection; answers from a dict of command -> response."""

    def __init__(self, responses: Dict[str, Any]):
        self.responses = responses
        self.commands: List[str] = []
        self.closed = False

    def command(self, command: str) -> str:
        self.commands.append(command)
        response = self.responses.get(command, "Unknown or incomplete command")
        if isinstance(response, BaseException):
            raise response
        return response

    def disconnect(self) -> None:
        self.closed = True


class FakeConnector:
    """Connection factory that records every connection it opens."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, fail: Optional[BaseException] = None):
        self.responses = responses if responses is not None else {}
        self.fail = fail
        self.connections: List[FakeConnection] = []

    def __call__(self, host: str, port: int, password: str, timeout: float) -> FakeConnection:
        if self.fail is not None:
            raise self.fail
        conn = FakeConnection(self.responses)
        self.connections.append(conn)
        return conn


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None):
        self.status_code = status_code
        self._body = body
        self.text = body if isinstance(body, str) else json.dumps(body) if body is not None else ""

    def json(self) -> Any:
        return json.loads(self.text)


class FakeProfileFetch:
    """Counts lookups; answers with the configured response per uuid."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, default: Any = None):
        self.responses = responses or {}
        self.default = default
        self.calls: List[str] = []

    def __call__(self, uuid: str) -> FakeResponse:
        self.calls.append(uuid)
        response = self.responses.get(uuid, self.default)
        if isinstance(response, BaseException):
            raise response
        if response is None:
            return FakeResponse(200, {"id": uuid.replace("-", ""), "name": "Steve"})
        return response


# ============================================================================
# Local RCON server
# ============================================================================

RCON_LOGIN = 3
RCON_RESPONSE = 0
RCON_AUTH_RESPONSE = 2


def _rcon_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = struct.pack("<ii", request_id, packet_type) + body.encode("utf8") + b"\x00\x00"
    return struct.pack("<i", len(payload)) + payload


def _recv_exactly(client: socket.socket, length: int) -> Optional[bytes]:
    data = b""
    while len(data) < length:
        chunk = client.recv(length - len(data))
        if not chunk:
            return None
        data += chunk
    return data


class LocalRCONServer:
    """
    RCON server on 127.0.0.1 that accepts any password.

    Commands listed in responses get an answer, every other command is read
    and never answered.
    """

    def __init__(self, responses: Dict[str, str]):
        self.responses = responses
        self.connections = 0
        self._clients: List[socket.socket] = []
        self._sock = socket.create_server(("127.0.0.1", 0))
        self.port = self._sock.getsockname()[1]
        threading.Thread(target=self._serve, daemon=True).start()

    def _serve(self) -> None:
        while True:
            try:
                client, _ = self._sock.accept()
            except OSError:
                return
            self.connections += 1
            self._clients.append(client)
            threading.Thread(target=self._handle, args=(client,), daemon=True).start()

    def _handle(self, client: socket.socket) -> None:
        try:
            while True:
                header = _recv_exactly(client, 4)
                if header is None:
                    return
                (length,) = struct.unpack("<i", header)
                payload = _recv_exactly(client, length)
                if payload is None:
                    return
                request_id, packet_type = struct.unpack("<ii", payload[:8])
                body = payload[8:-2].decode("utf8")
                if packet_type == RCON_LOGIN:
                    client.sendall(_rcon_packet(request_id, RCON_AUTH_RESPONSE, ""))
                elif body in self.responses:
                    client.sendall(_rcon_packet(request_id, RCON_RESPONSE, self.responses[body]))
        except OSError:
            return

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        for client in self._clients:
            client.close()


@pytest.fixture()
def rcon_server():
    server = LocalRCONServer({"list": "There are 0 of a max of 20 players online: "})
    yield server
    server.close()
