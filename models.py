"""
Data types produced by the exporter.

Stat records parsed from RCON output are frozen dataclasses. Player data read
from the world save is a plain mutable dataclass tree that both stats schema
eras (before and after Minecraft 1.15) are converted into.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# ============================================================================
# RCON stat records
# ============================================================================


@dataclass(frozen=True)
class TPSStat:
    """TPS and tick time of one dimension, or of the whole server (empty id/name)."""

    id: str
    name: str
    ticktime: float
    tps: float


@dataclass(frozen=True)
class EntityCount:
    name: str
    count: int


@dataclass(frozen=True)
class DynmapRenderStat:
    dim: str
    processed: int
    rendered: int
    updated: int


@dataclass(frozen=True)
class DynmapChunkloadingStat:
    state: str
    count: int
    duration: float  # average msec per chunk


@dataclass(frozen=True)
class TickStats:
    """Result of the vanilla "tick query" command (1.20.3+)."""

    target_rate: float
    average: float
    p50: float
    p95: float
    p99: float


@dataclass
class ServerStats:
    """
    One RCON collection pass.

    A field is None when the matching subsystem is disabled, not supported by
    the server, or its command failed during this pass.
    """

    players_online: Optional[List[str]] = None
    forge_dimensions: Optional[List[TPSStat]] = None
    forge_overall: Optional[TPSStat] = None
    forge_entities: Optional[List[EntityCount]] = None
    paper_tps: Optional[List[float]] = None
    dynmap_render: Optional[List[DynmapRenderStat]] = None
    dynmap_chunkloading: Optional[List[DynmapChunkloadingStat]] = None
    tick: Optional[TickStats] = None


# ============================================================================
# World save data
# ============================================================================


@dataclass(frozen=True)
class MinecraftVersion:
    id: int = 0
    name: str = ""
    snapshot: bool = False


@dataclass
class CustomStats:
    """
    Well-known entries of the "minecraft:custom" stats category.

    Distances are in cm, playtime in ticks. Anything we don't have a field
    for ends up in `custom`.
    """

    jump: int = 0
    deaths: int = 0
    damage_taken: int = 0
    damage_dealt: int = 0
    playtime: int = 0
    walk: int = 0
    swim: int = 0
    sprint: int = 0
    dive: int = 0
    fall: int = 0
    fly: int = 0
    boat: int = 0
    horse: int = 0
    climb: int = 0
    sleep: int = 0
    crafted: int = 0
    custom: Dict[str, int] = field(default_factory=dict)


@dataclass
class Stats:
    crafted: Dict[str, int] = field(default_factory=dict)
    mined: Dict[str, int] = field(default_factory=dict)
    picked_up: Dict[str, int] = field(default_factory=dict)
    killed: Dict[str, int] = field(default_factory=dict)
    killed_by: Dict[str, int] = field(default_factory=dict)
    custom: CustomStats = field(default_factory=CustomStats)


@dataclass
class PlayerAttributes:
    """Values read from playerdata/<uuid>.dat"""

    xp_total: int = 0
    xp_level: int = 0
    score: int = 0
    health: float = 0.0
    food_level: int = 0


@dataclass
class PlayerData:
    advancements: Dict[str, bool]
    stats: Stats
    attributes: PlayerAttributes


@dataclass
class PlayerSnapshot:
    uuid: str
    name: str
    data: PlayerData


# ============================================================================
# Shared state
# ============================================================================


class ServerVersion:
    """
    Last known Minecraft version of the server, e.g. "1.20.4".

    Written by the save collection pass, read by the RCON client. The lock
    only covers this one value.
    """

    def __init__(self, name: str = ""):
        self._name = name
        self._lock = threading.Lock()

    def get(self) -> str:
        with self._lock:
            return self._name

    def set(self, name: str) -> None:
        with self._lock:
            self._name = name
