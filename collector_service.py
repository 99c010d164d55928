"""
Collector Service - One scrape of the Minecraft server.

Two independent passes:
- collect_players(): reads every known player from the world save and
  resolves their names through the uuid cache
- collect_server(): runs the RCON commands that make sense for the
  configured server type (only if RCON is enabled)

Nothing is kept between scrapes. A sub-operation that fails is logged and
its part of the result is left out; everything else still gets collected.
A player whose data can't be fully loaded is dropped from that scrape.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from cache_service import UUIDCache
from config import SERVER_TYPE_FORGE, SERVER_TYPE_NEOFORGE, SERVER_TYPE_PAPER, Config
from errors import ExporterError
from models import PlayerSnapshot, ServerStats, ServerVersion
from rcon_service import RCONService
from save_service import Save

logger = logging.getLogger(__name__)


def count_advancements(advancements: Dict[str, bool]) -> int:
    """Number of completed advancements."""
    return sum(1 for done in advancements.values() if done)


def count_total(values: Dict[str, int]) -> int:
    return sum(values.values())


class CollectorService:
    """
    Owns the save reader, the uuid cache, the optional RCON client and the
    server version they share.
    """

    def __init__(
        self,
        save: Save,
        uuid_cache: UUIDCache,
        rcon: Optional[RCONService] = None,
        server_type: str = "vanilla",
        dynmap_enabled: bool = False,
        version: Optional[ServerVersion] = None,
    ):
        self.save = save
        self.uuid_cache = uuid_cache
        self.rcon = rcon
        self.server_type = server_type
        self.dynmap_enabled = dynmap_enabled
        if version is None:
            version = rcon.version if rcon is not None else ServerVersion()
        self.version = version

    @classmethod
    def from_config(cls, config: Config) -> "CollectorService":
        """
        Build all services from the configuration.

        Raises:
            ConfigurationError: invalid world directory, or RCON enabled
                without host, port or password
        """
        version = ServerVersion()
        save = Save(config.MC_WORLD_DIR)
        uuid_cache = UUIDCache(ttl=timedelta(hours=config.UUID_CACHE_TTL_HOURS))

        rcon = None
        if config.MC_RCON_ENABLE:
            rcon = RCONService(
                config.MC_SERVER_HOST,
                config.MC_RCON_PORT,
                config.MC_RCON_PASSWORD,
                version=version,
                timeout=config.MC_RCON_TIMEOUT,
            )

        return cls(
            save,
            uuid_cache,
            rcon=rcon,
            server_type=config.MC_SERVER_TYPE,
            dynmap_enabled=config.MC_DYNMAP_ENABLED,
            version=version,
        )

    def close(self) -> None:
        if self.rcon is not None:
            self.rcon.close()

    # ========================================================================
    # World save
    # ========================================================================

    def collect_players(self) -> List[PlayerSnapshot]:
        """Load every known player. Players that fail to load are skipped."""
        logger.debug("Starting collection of minecraft metrics from savedata")

        try:
            self.version.set(self.save.refresh_version().name)
        except ExporterError as e:
            logger.error("Failed to read server version from level.dat: %s", e)

        try:
            players = self.save.get_players()
        except OSError as e:
            logger.error("Failed to get list of players: %s", e)
            return []

        snapshots = []
        for uuid in players:
            try:
                name = self.uuid_cache.resolve(uuid)
            except ExporterError as e:
                logger.error("Failed to fetch name for player %s: %s", uuid, e)
                continue

            try:
                data = self.save.load_player_data(uuid)
            except (ExporterError, OSError) as e:
                logger.error("Failed to load data for player %s (%s): %s", name, uuid, e)
                continue

            snapshots.append(PlayerSnapshot(uuid=uuid, name=name, data=data))

        logger.debug("Finished collection of minecraft metrics from savedata")
        return snapshots

    # ========================================================================
    # RCON
    # ========================================================================

    def collect_server(self) -> Optional[ServerStats]:
        """Run all RCON commands for this server. None if RCON is disabled."""
        if self.rcon is None:
            return None

        logger.debug("Starting collection of minecraft metrics via RCON")
        stats = ServerStats()

        try:
            stats.players_online = self.rcon.get_players_online()
        except ExporterError as e:
            logger.error("Failed to retrieve online players: %s", e)

        if self.server_type in (SERVER_TYPE_FORGE, SERVER_TYPE_NEOFORGE):
            logger.debug("Gathering %s metrics", self.server_type)
            try:
                stats.forge_dimensions, stats.forge_overall = self.rcon.get_forge_tps(self.server_type)
            except ExporterError as e:
                logger.error("Failed to collect %s tps stats: %s", self.server_type, e)
            try:
                stats.forge_entities = self.rcon.get_forge_entities(self.server_type)
            except ExporterError as e:
                logger.error("Failed to retrieve %s entity list: %s", self.server_type, e)
        elif self.server_type == SERVER_TYPE_PAPER:
            logger.debug("Gathering paper metrics")
            try:
                stats.paper_tps = self.rcon.get_paper_tps()
            except ExporterError as e:
                logger.error("Failed to collect paper tps stats: %s", e)

        if self.dynmap_enabled:
            logger.debug("Gathering dynmap metrics")
            try:
                stats.dynmap_render, stats.dynmap_chunkloading = self.rcon.get_dynmap_stats()
            except ExporterError as e:
                logger.error("Failed to collect dynmap stats: %s", e)

        if self.rcon.supports_tick_query:
            try:
                stats.tick = self.rcon.get_tick_query()
            except ExporterError as e:
                logger.error("Failed to collect tick query stats: %s", e)

        logger.debug("Finished collection of minecraft metrics via RCON")
        return stats
