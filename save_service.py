"""
Save Service - Player statistics from the Minecraft world directory.

This service reads the world save the server writes to disk:
- level.dat: Server version (gzip compressed NBT)
- stats/<uuid>.json: Statistics of each player, one file per known player
- advancements/<uuid>.json: Completed advancements
- playerdata/<uuid>.dat: XP, score, health and food level (gzip compressed NBT)

Minecraft changed the stats file format in 1.15. Older worlds store a flat
map of dotted keys ("stat.mineBlock.minecraft.stone": 5), newer worlds a
nested document ({"stats": {"minecraft:mined": {"minecraft:stone": 5}}}).
Both are converted into the same Stats structure, so nothing downstream
needs to know which format a world uses.
"""

import gzip
import io
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import nbtlib
from packaging.version import InvalidVersion, Version

from errors import ConfigurationError, NotFoundError, ParseError
from models import CustomStats, MinecraftVersion, PlayerAttributes, PlayerData, Stats

logger = logging.getLogger(__name__)

STATS_DIR = "stats"
PLAYER_DIR = "playerdata"
ADVANCEMENTS_DIR = "advancements"
LEVEL_DAT = "level.dat"

# Stats files switched to the nested format with 1.15
NESTED_STATS_MIN_VERSION = Version("1.15.0")

# Key in advancements/<uuid>.json that is not an advancement
ADVANCEMENTS_DATA_VERSION_KEY = "DataVersion"

# Category maps: key in the nested format -> Stats attribute
CATEGORIES = {
    "minecraft:crafted": "crafted",
    "minecraft:mined": "mined",
    "minecraft:picked_up": "picked_up",
    "minecraft:killed": "killed",
    "minecraft:killed_by": "killed_by",
}
LEGACY_CATEGORIES = {
    "craftItem": "crafted",
    "mineBlock": "mined",
    "pickup": "picked_up",
    "killEntity": "killed",
    "entityKilledBy": "killed_by",
}

# Well-known "minecraft:custom" stats -> CustomStats attribute
CUSTOM_STATS = {
    "minecraft:jump": "jump",
    "minecraft:deaths": "deaths",
    "minecraft:damage_taken": "damage_taken",
    "minecraft:damage_dealt": "damage_dealt",
    "minecraft:play_time": "playtime",
    "minecraft:play_one_minute": "playtime",  # name before 1.17
    "minecraft:walk_one_cm": "walk",
    "minecraft:walk_on_water_one_cm": "swim",
    "minecraft:sprint_one_cm": "sprint",
    "minecraft:walk_under_water_one_cm": "dive",
    "minecraft:fall_one_cm": "fall",
    "minecraft:fly_one_cm": "fly",
    "minecraft:boat_one_cm": "boat",
    "minecraft:horse_one_cm": "horse",
    "minecraft:climb_one_cm": "climb",
    "minecraft:sleep_in_bed": "sleep",
    "minecraft:interact_with_crafting_table": "crafted",
}
LEGACY_CUSTOM_STATS = {
    "jump": "jump",
    "deaths": "deaths",
    "damageTaken": "damage_taken",
    "damageDealt": "damage_dealt",
    "playOneMinute": "playtime",
    "walkOneCm": "walk",
    "swimOneCm": "swim",
    "sprintOneCm": "sprint",
    "diveOneCm": "dive",
    "fallOneCm": "fall",
    "flyOneCm": "fly",
    "boatOneCm": "boat",
    "horseOneCm": "horse",
    "climbOneCm": "climb",
    "sleepInBed": "sleep",
    "craftingTableInteraction": "crafted",
}


def decode_nbt(raw: bytes) -> nbtlib.File:
    """Decode a gzip compressed NBT file."""
    return nbtlib.File.parse(io.BytesIO(gzip.decompress(raw)))


def _read_bytes(path: Path, what: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise NotFoundError(what, str(path)) from None


def _read_json(path: Path, what: str) -> Any:
    raw = _read_bytes(path, what)
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ParseError(what, str(path), reason=str(e)) from e


def _stat_value(key: str, value: Any) -> int:
    # bool is an int subclass, but never a valid stat value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(key, value, reason="stat values must be integers")
    return value


def custom_stats_from_nested(values: Dict[str, Any]) -> CustomStats:
    """Sort a "minecraft:custom" map into well-known fields and the leftover bag."""
    custom = CustomStats()
    for key, value in values.items():
        value = _stat_value(key, value)
        attr = CUSTOM_STATS.get(key)
        if attr is None:
            custom.custom[key] = value
        else:
            setattr(custom, attr, value)
    return custom


def stats_from_nested(document: Any) -> Stats:
    """
    Convert a 1.15+ stats document into Stats.

    Example:
        {"stats": {"minecraft:mined": {"minecraft:stone": 5},
                   "minecraft:custom": {"minecraft:jump": 10}},
         "DataVersion": 3465}
    """
    if not isinstance(document, dict) or not isinstance(document.get("stats", {}), dict):
        raise ParseError("stats", document, reason="expected an object with a \"stats\" object")

    categories = document.get("stats", {})
    stats = Stats()
    for key, attr in CATEGORIES.items():
        values = categories.get(key, {})
        if not isinstance(values, dict):
            raise ParseError(key, values, reason="expected an object")
        setattr(stats, attr, {name: _stat_value(name, v) for name, v in values.items()})

    custom = categories.get("minecraft:custom", {})
    if not isinstance(custom, dict):
        raise ParseError("minecraft:custom", custom, reason="expected an object")
    stats.custom = custom_stats_from_nested(custom)
    return stats


def stats_from_legacy(flat: Any) -> Stats:
    """
    Convert a pre-1.15 flat stats map into Stats.

    Keys are split on ".":
        stat.mineBlock.minecraft.stone -> mined["minecraft:stone"]
        stat.jump                      -> custom.jump
        stat.useItem.minecraft.bow     -> custom.custom["useItem.minecraft.bow"]

    Raises:
        ParseError: a key doesn't start with "stat." or names a category
            without an item
    """
    if not isinstance(flat, dict):
        raise ParseError("stats", flat, reason="expected an object")

    stats = Stats()
    for key, value in flat.items():
        value = _stat_value(key, value)
        parts = key.split(".")
        if parts[0] != "stat" or len(parts) < 2:
            raise ParseError(key, value, reason="not a stat key")

        category = LEGACY_CATEGORIES.get(parts[1])
        if category is not None:
            if len(parts) < 3:
                raise ParseError(key, value, reason="missing item name")
            getattr(stats, category)[":".join(parts[2:])] = value
        elif parts[1] in LEGACY_CUSTOM_STATS:
            setattr(stats.custom, LEGACY_CUSTOM_STATS[parts[1]], value)
        else:
            stats.custom.custom[".".join(parts[1:])] = value
    return stats


def advancements_from_json(document: Any) -> Dict[str, bool]:
    """Map advancement id -> done. The "DataVersion" entry is dropped."""
    if not isinstance(document, dict):
        raise ParseError("advancements", document, reason="expected an object")

    advancements = {}
    for key, value in document.items():
        if key == ADVANCEMENTS_DATA_VERSION_KEY:
            continue
        if not isinstance(value, dict):
            raise ParseError(key, value, reason="expected an advancement object")
        advancements[key] = bool(value.get("done", False))
    return advancements


class Save:
    """
    A Minecraft world directory.

    Only reads from disk, never writes. Construct once at startup; every
    player load re-reads the version from level.dat.
    """

    def __init__(
        self,
        path: Union[str, os.PathLike],
        decode: Optional[Callable[[bytes], Any]] = None,
    ):
        """
        Raises:
            ConfigurationError: if path is not a directory or is missing the
                stats, playerdata or advancements subdirectory
        """
        self.world_dir = Path(path)
        if not self.world_dir.is_dir():
            raise ConfigurationError(
                "world", f"No valid world directory provided: \"{path}\" is not a directory"
            )

        self.stats_dir = self.world_dir / STATS_DIR
        self.player_dir = self.world_dir / PLAYER_DIR
        self.advancements_dir = self.world_dir / ADVANCEMENTS_DIR
        for subdir in (self.stats_dir, self.player_dir, self.advancements_dir):
            if not subdir.is_dir():
                raise ConfigurationError(
                    "world",
                    f"No valid world directory provided: Failed to find \"{subdir.name}\" subdirectory",
                )

        self._decode = decode or decode_nbt
        self.version = MinecraftVersion()

    def _read_nbt(self, path: Path, what: str) -> Any:
        raw = _read_bytes(path, what)
        try:
            return self._decode(raw)
        except Exception as e:
            raise ParseError(what, str(path), reason=str(e)) from e

    def refresh_version(self) -> MinecraftVersion:
        """
        Read the server version from level.dat.

        Raises:
            NotFoundError: level.dat is missing
            ParseError: level.dat can't be decoded
        """
        level = self._read_nbt(self.world_dir / LEVEL_DAT, "level.dat")
        try:
            data = level["Data"]["Version"]
            self.version = MinecraftVersion(
                id=int(data["Id"]),
                name=str(data["Name"]),
                snapshot=bool(data.get("Snapshot", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError("level.dat version", str(self.world_dir / LEVEL_DAT), reason=str(e)) from e
        return self.version

    def get_players(self) -> List[str]:
        """Return the uuids of all players that have a stats file."""
        return sorted(
            entry.stem
            for entry in self.stats_dir.iterdir()
            if entry.is_file() and entry.suffix == ".json"
        )

    def load_player_data(self, uuid: str) -> PlayerData:
        """
        Load advancements, stats and attributes of one player.

        Either everything loads, or an error is raised and nothing is returned.
        """
        advancements = self.load_advancements(uuid)
        self.refresh_version()
        stats = self.load_stats(uuid)
        attributes = self.load_attributes(uuid)
        return PlayerData(advancements=advancements, stats=stats, attributes=attributes)

    def load_advancements(self, uuid: str) -> Dict[str, bool]:
        path = self.advancements_dir / f"{uuid}.json"
        return advancements_from_json(_read_json(path, "advancements"))

    def load_stats(self, uuid: str) -> Stats:
        """Load stats using the format of the last read server version."""
        try:
            version = Version(self.version.name)
        except InvalidVersion:
            raise ParseError("version", self.version.name) from None

        document = _read_json(self.stats_dir / f"{uuid}.json", "stats")
        if version >= NESTED_STATS_MIN_VERSION:
            return stats_from_nested(document)
        logger.debug("Converting pre-1.15 stats of %s (world version %s)", uuid, version)
        return stats_from_legacy(document)

    def load_attributes(self, uuid: str) -> PlayerAttributes:
        path = self.player_dir / f"{uuid}.dat"
        data = self._read_nbt(path, "playerdata")
        try:
            return PlayerAttributes(
                xp_total=int(data.get("XpTotal", 0)),
                xp_level=int(data.get("XpLevel", 0)),
                score=int(data.get("Score", 0)),
                health=float(data.get("Health", 0.0)),
                food_level=int(data.get("foodLevel", 0)),
            )
        except (TypeError, ValueError) as e:
            raise ParseError("playerdata", str(path), reason=str(e)) from e
