from __future__ import annotations

import socket
from datetime import timedelta

import pytest

from cache_service import UUIDCache
from collector_service import CollectorService, count_advancements, count_total
from config import Config
from conftest import TEST_UUID, FakeConnector, FakeProfileFetch, FakeResponse, make_world
from errors import ConfigurationError
from models import EntityCount, ServerVersion, TickStats, TPSStat
from rcon_service import RCONService
from save_service import Save

NESTED_STATS = {"stats": {"minecraft:mined": {"minecraft:stone": 5}}, "DataVersion": 3700}

TICK_QUERY = (
    "The game is running normally\n"
    "Target tick rate: 20.0 per second.\n"
    "Average time per tick: 0.5ms (Target: 50.0ms)\n"
    "Percentiles: P50: 0.4ms P95: 0.8ms P99: 1.2ms, sample: 100"
)


def build_collector(tmp_path, responses, server_type="vanilla", dynmap=False, version="1.20.4"):
    world = make_world(tmp_path / "world", version, NESTED_STATS)
    shared = ServerVersion()
    connector = FakeConnector(responses)
    rcon = RCONService("localhost", 25575, "secret", version=shared, connect=connector)
    collector = CollectorService(
        Save(world),
        UUIDCache(timedelta(hours=1), fetch=FakeProfileFetch()),
        rcon=rcon,
        server_type=server_type,
        dynmap_enabled=dynmap,
        version=shared,
    )
    return collector, connector


def test_collect_players(tmp_path) -> None:
    collector, _ = build_collector(tmp_path, {})

    players = collector.collect_players()

    assert [(p.uuid, p.name) for p in players] == [(TEST_UUID, "Steve")]
    assert players[0].data.stats.mined == {"minecraft:stone": 5}
    assert collector.version.get() == "1.20.4"


def test_collect_players_drops_only_broken_player(tmp_path) -> None:
    collector, _ = build_collector(tmp_path, {})
    broken = "00000000-0000-0000-0000-000000000000"
    (tmp_path / "world" / "stats" / f"{broken}.json").write_text("{}", encoding="utf-8")

    players = collector.collect_players()

    assert [p.uuid for p in players] == [TEST_UUID]


def test_collect_players_drops_player_without_name(tmp_path) -> None:
    collector, _ = build_collector(tmp_path, {})
    collector.uuid_cache = UUIDCache(
        timedelta(hours=1), fetch=FakeProfileFetch(default=FakeResponse(500, "error"))
    )

    assert collector.collect_players() == []


def test_collect_server_disabled(tmp_path) -> None:
    world = make_world(tmp_path / "world", "1.20.4", NESTED_STATS)
    collector = CollectorService(Save(world), UUIDCache())

    assert collector.collect_server() is None


def test_collect_server_vanilla_with_tick_query(tmp_path) -> None:
    collector, connector = build_collector(
        tmp_path,
        {"list": "There are 1 of a max of 20 players online: Steve", "tick query": TICK_QUERY},
    )
    collector.collect_players()

    stats = collector.collect_server()

    assert stats.players_online == ["Steve"]
    assert stats.tick == TickStats(target_rate=20.0, average=0.5, p50=0.4, p95=0.8, p99=1.2)
    assert stats.forge_overall is None
    assert stats.paper_tps is None
    assert connector.connections[0].commands == ["list", "tick query"]


def test_collect_server_old_version_skips_tick_query(tmp_path) -> None:
    collector, connector = build_collector(
        tmp_path, {"list": "There are 0/10 players online:"}, version="1.12.2"
    )
    collector.collect_players()

    stats = collector.collect_server()

    assert stats.players_online == []
    assert stats.tick is None
    assert connector.connections[0].commands == ["list"]


@pytest.mark.parametrize("server_type", ["forge", "neoforge"])
def test_collect_server_forge(tmp_path, server_type: str) -> None:
    collector, _ = build_collector(
        tmp_path,
        {
            "list": "There are 0/10 players online:",
            f"{server_type} tps": "Dim  0 (DIM_0) : Mean tick time: 7.672 ms. Mean TPS: 20.000"
            "Overall : Mean tick time: 8.037 ms. Mean TPS: 20.000",
            f"{server_type} entity list": "Total: 5  5: minecraft:cow",
        },
        server_type=server_type,
        version="1.12.2",
    )

    stats = collector.collect_server()

    assert stats.forge_dimensions == [TPSStat(id="0", name="DIM_0", ticktime=7.672, tps=20.0)]
    assert stats.forge_overall == TPSStat(id="", name="", ticktime=8.037, tps=20.0)
    assert stats.forge_entities == [EntityCount(name="minecraft:cow", count=5)]


def test_collect_server_failures_are_omitted(tmp_path) -> None:
    collector, connector = build_collector(
        tmp_path,
        {
            "list": "There are 0/10 players online:",
            "tps": "TPS from last 1m, 5m, 15m: 20.0, 20.0",
            "dynmap stats": socket.timeout("timed out"),
        },
        server_type="paper",
        dynmap=True,
        version="1.12.2",
    )

    stats = collector.collect_server()

    assert stats.players_online == []
    assert stats.paper_tps is None
    assert stats.dynmap_render is None
    assert stats.dynmap_chunkloading is None
    # the timeout dropped the first connection
    assert len(connector.connections) == 1
    assert connector.connections[0].closed


def test_counters() -> None:
    assert count_advancements({"a": True, "b": False, "c": True}) == 2
    assert count_total({"minecraft:stone": 5, "minecraft:dirt": 3}) == 8
    assert count_total({}) == 0


def test_from_config(tmp_path) -> None:
    world = make_world(tmp_path / "world", "1.20.4", NESTED_STATS)
    cfg = Config()
    cfg.MC_WORLD_DIR = str(world)
    cfg.MC_RCON_ENABLE = True
    cfg.MC_RCON_PASSWORD = "secret"
    cfg.MC_SERVER_TYPE = "paper"

    collector = CollectorService.from_config(cfg)

    assert collector.rcon is not None
    assert collector.rcon.version is collector.version
    assert collector.server_type == "paper"


def test_from_config_rcon_without_password(tmp_path) -> None:
    world = make_world(tmp_path / "world", "1.20.4", NESTED_STATS)
    cfg = Config()
    cfg.MC_WORLD_DIR = str(world)
    cfg.MC_RCON_ENABLE = True
    cfg.MC_RCON_PASSWORD = ""

    with pytest.raises(ConfigurationError):
        CollectorService.from_config(cfg)
