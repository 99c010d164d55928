"""
RCON Service - Runs console commands on the Minecraft server.

RCON (Remote Console) is Minecraft's built-in protocol for sending commands
to the server remotely. It's like typing commands in the server console,
but from Python code.

Unlike a one-shot `with MCRcon(...)` block, this client keeps one connection
open between scrapes:
- The connection is opened lazily on the first command
- Only one command runs at a time (a lock serializes callers)
- Every read has a deadline; on timeout or any transport error the connection
  is closed, and the next command reconnects from scratch

The wrappers at the bottom each send one fixed command and hand the raw
response to the matching parser in rcon_parsers.
"""

import logging
import math
import signal
import socket
import struct
import threading
from typing import Any, Callable, List, Optional, Tuple

from mcrcon import MCRcon, MCRconException
from packaging.version import InvalidVersion, Version

import rcon_parsers
from errors import CommandTimeoutError, ConfigurationError, TransportError
from models import (
    DynmapChunkloadingStat,
    DynmapRenderStat,
    EntityCount,
    ServerVersion,
    TickStats,
    TPSStat,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0

# "tick query" was added in Minecraft Java Edition 1.20.3
TICK_QUERY_MIN_VERSION = Version("1.20.3")


def cancel_read_alarm() -> None:
    """
    Disarm mcrcon's SIGALRM backstop.

    mcrcon only clears the alarm after a read completes. A read that ends in
    an exception leaves it armed, and the handler would later raise
    MCRconException in whatever code the main thread runs at that moment.
    """
    signal.alarm(0)


def open_mcrcon(host: str, port: int, password: str, timeout: float) -> MCRcon:
    """
    Open and authenticate an mcrcon connection with a read deadline.

    mcrcon guards reads with SIGALRM in whole seconds. We set a socket
    timeout below that, so a slow read fails on the socket itself and the
    alarm only acts as a backstop.

    Note: MCRcon installs a signal handler in __init__, so this must run on
    the main thread.
    """
    conn = MCRcon(host, password, port=port, timeout=math.ceil(timeout) + 1)
    try:
        conn.connect()
        conn.socket.settimeout(timeout)
    except Exception:
        cancel_read_alarm()
        conn.disconnect()
        raise
    return conn


class RCONService:
    """
    Client for one RCON session with the Minecraft server.

    RCON requires:
    1. Server has RCON enabled in server.properties
    2. Correct password
    3. Network access to the server on the RCON port (default 25575)
    """

    def __init__(
        self,
        host: str,
        port: int,
        password: str,
        version: Optional[ServerVersion] = None,
        timeout: float = DEFAULT_TIMEOUT,
        connect: Optional[Callable[[str, int, str, float], Any]] = None,
    ):
        """
        Validate connection settings. Does not connect yet.

        Args:
            host: Server hostname or IP
            port: RCON port
            password: RCON password (rcon.password in server.properties)
            version: Shared holder for the server version, used to decide
                which commands the server supports
            timeout: Seconds to wait for a command response
            connect: Connection factory, defaults to open_mcrcon

        Raises:
            ConfigurationError: if host, port or password is missing
        """
        if not host:
            raise ConfigurationError("host", "Missing target host for RCON")
        if port is None or port <= 0:
            raise ConfigurationError("port", "Missing target port for RCON")
        if not password:
            raise ConfigurationError("password", "Missing password for RCON")

        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self.version = version if version is not None else ServerVersion()

        self._connect = connect or open_mcrcon
        self._conn = None
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _create_connection(self) -> None:
        logger.debug("Creating new RCON connection to %s:%d", self.host, self.port)
        try:
            self._conn = self._connect(self.host, self.port, self.password, self.timeout)
        except (OSError, MCRconException, struct.error) as e:
            raise TransportError("RCON connect", e) from e

    def _close_conn(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.disconnect()
        except OSError as e:
            logger.debug("Error while closing RCON connection: %s", e)

    def cmd(self, command: str) -> str:
        """
        Execute a command on the Minecraft server and return its raw response.

        Raises:
            TransportError: connecting, authenticating, sending or receiving failed
            CommandTimeoutError: no response within `timeout` seconds
        """
        with self._lock:
            if self._conn is None:
                self._create_connection()

            logger.debug("RCON: Running command %r", command)
            try:
                response = self._conn.command(command)
            except (socket.timeout, TimeoutError) as e:
                cancel_read_alarm()
                self._close_conn()
                raise CommandTimeoutError(command, self.timeout) from e
            except (OSError, MCRconException, struct.error) as e:
                cancel_read_alarm()
                self._close_conn()
                raise TransportError(f"RCON command {command!r}", e) from e

            logger.debug("RCON: Received response for %r: %r", command, response)
            return response

    def close(self) -> None:
        """Close the RCON connection if one is open."""
        with self._lock:
            self._close_conn()

    @property
    def supports_tick_query(self) -> bool:
        """True if the last known server version is 1.20.3 or newer."""
        name = self.version.get()
        if not name:
            return False
        try:
            return Version(name) >= TICK_QUERY_MIN_VERSION
        except InvalidVersion:
            return False

    # ------------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------------

    def get_players_online(self) -> List[str]:
        """
        Get the list of players currently online.

        Example response from server:
        "There are 3 of a max of 20 players online: Steve, Alex, Herobrine"
        """
        return rcon_parsers.parse_players_online(self.cmd("list"))

    def get_forge_tps(self, variant: str = "forge") -> Tuple[List[TPSStat], TPSStat]:
        """Per-dimension and overall TPS. variant is "forge" or "neoforge"."""
        return rcon_parsers.parse_forge_tps(self.cmd(f"{variant} tps"))

    def get_forge_entities(self, variant: str = "forge") -> List[EntityCount]:
        return rcon_parsers.parse_forge_entities(self.cmd(f"{variant} entity list"))

    def get_paper_tps(self) -> List[float]:
        return rcon_parsers.parse_paper_tps(self.cmd("tps"))

    def get_dynmap_stats(
        self,
    ) -> Tuple[List[DynmapRenderStat], List[DynmapChunkloadingStat]]:
        return rcon_parsers.parse_dynmap_stats(self.cmd("dynmap stats"))

    def get_tick_query(self) -> TickStats:
        """Tick rate and tick time percentiles. Needs 1.20.3+, see supports_tick_query."""
        return rcon_parsers.parse_tick_query(self.cmd("tick query"))
