"""
Parsers for RCON command output.

Every server variant (vanilla, Forge, NeoForge, Paper, Dynmap plugin) and
every Minecraft version formats its console output a little differently.
Each function here handles the output of exactly one command, never touches
the network, and either returns typed records or raises ParseError with the
text it choked on.

Example outputs handled:
  list:        There are 2/10 players online:Foo, Bar
               There are 2 of a max of 20 players online: Foo, Bar
  forge tps:   Dim  0 (DIM_0) : Mean tick time: 7.672 ms. Mean TPS: 20.000
               Overall : Mean tick time: 8.037 ms. Mean TPS: 20.000
  neoforge tps: minecraft:overworld: 20.000 TPS (2.126 ms/tick)
               Overall: 20.000 TPS (2.126 ms/tick)
  paper tps:   TPS from last 1m, 5m, 15m: 20.0, 20.0, 20.0
  tick query:  Target tick rate: 20.0 per second.
               Average time per tick: 0.5ms (Target: 50.0ms)
               Percentiles: P50: 0.4ms P95: 0.8ms P99: 1.2ms, sample: 100
"""

import re
from typing import List, Tuple

from errors import ParseError
from models import (
    DynmapChunkloadingStat,
    DynmapRenderStat,
    EntityCount,
    TickStats,
    TPSStat,
)

# Console colors: ANSI escapes (Paper 1.20+) and legacy "§x" formatting codes
ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")
LEGACY_FORMAT_PATTERN = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)

PLAYERS_ONLINE_DELIMITER = "players online:"

FORGE_LEGACY_DIM = re.compile(
    r"Dim\s*(?P<id>\S+?)\s*\((?P<name>.*?)\)\s*:\s*"
    r"Mean tick time:\s*(?P<ticktime>[-\d.]+) ms\.\s*Mean TPS:\s*(?P<tps>[-\d.]+)"
)
FORGE_LEGACY_OVERALL = re.compile(
    r"Overall\s*:\s*Mean tick time:\s*(?P<ticktime>[-\d.]+) ms\.\s*Mean TPS:\s*(?P<tps>[-\d.]+)"
)
FORGE_MODERN_LINE = re.compile(
    r"^\s*(?P<name>.+?): (?P<tps>[-\d.]+) TPS \((?P<ticktime>[-\d.]+) ms/tick\)",
    re.MULTILINE,
)
FORGE_MODERN_OVERALL_NAME = "Overall"

FORGE_ENTITY_TOTAL = re.compile(r"^\s*Total:\s*\d+")
FORGE_ENTITY = re.compile(r"(?P<count>\d+): (?P<name>\S+:\S+)")

PAPER_TPS_PREFIX = "TPS from last 1m, 5m, 15m: "
PAPER_TPS_WINDOWS = ("1m", "5m", "15m")

DYNMAP_RENDER = re.compile(
    r"^\s*(?P<dim>.+?): processed=(?P<processed>\d+), "
    r"rendered=(?P<rendered>\d+), updated=(?P<updated>\d+)",
    re.MULTILINE,
)
DYNMAP_CHUNKLOADING = re.compile(
    r"Chunks processed: (?P<state>.*?): count=(?P<count>\d+), (?P<duration>[\d.]+) msec/chunk"
)

TICK_TARGET = re.compile(r"Target tick rate: (?P<value>[\d.,]+) per second")
TICK_AVERAGE = re.compile(r"Average time per tick: (?P<value>[\d.,]+?)\s?ms")
TICK_PERCENTILES = re.compile(
    r"P50: (?P<p50>[\d.,]+?)\s?ms P95: (?P<p95>[\d.,]+?)\s?ms P99: (?P<p99>[\d.,]+?)\s?ms"
)


def strip_formatting(text: str) -> str:
    """Remove ANSI escape sequences and legacy "§" color codes."""
    return LEGACY_FORMAT_PATTERN.sub("", ANSI_PATTERN.sub("", text))


def _to_float(field: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ParseError(field, value) from None


def _to_int(field: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(field, value) from None


# ============================================================================
# list
# ============================================================================


def parse_players_online(response: str) -> List[str]:
    """
    Parse the output of the "list" command.

    Both the pre-1.13 phrasing ("There are X/Y players online:") and the
    current one ("There are X of a max of Y players online: ") end in the
    same delimiter, followed by a comma separated list of names.

    Returns:
        List of player names, empty if nobody is online.
    """
    text = strip_formatting(response)
    if PLAYERS_ONLINE_DELIMITER not in text:
        raise ParseError("players online", response, reason="missing player list")

    players = text.split(PLAYERS_ONLINE_DELIMITER, 1)[1].strip()
    if not players:
        return []
    return [name.strip() for name in players.split(",") if name.strip()]


# ============================================================================
# forge tps / neoforge tps
# ============================================================================


def _forge_tps_legacy(text: str, response: str) -> Tuple[List[TPSStat], TPSStat]:
    dims = [
        TPSStat(
            id=m.group("id"),
            name=m.group("name"),
            ticktime=_to_float("ticktime", m.group("ticktime")),
            tps=_to_float("tps", m.group("tps")),
        )
        for m in FORGE_LEGACY_DIM.finditer(text)
    ]

    overall = FORGE_LEGACY_OVERALL.search(text)
    if overall is None:
        raise ParseError("overall tps", response, count=len(dims), reason="missing Overall line")

    return dims, TPSStat(
        id="",
        name="",
        ticktime=_to_float("overall ticktime", overall.group("ticktime")),
        tps=_to_float("overall tps", overall.group("tps")),
    )


def _forge_tps_modern(text: str, response: str) -> Tuple[List[TPSStat], TPSStat]:
    dims = []
    overall = None
    for m in FORGE_MODERN_LINE.finditer(text):
        name = m.group("name").strip()
        if name == FORGE_MODERN_OVERALL_NAME:
            overall = TPSStat(
                id="",
                name="",
                ticktime=_to_float("overall ticktime", m.group("ticktime")),
                tps=_to_float("overall tps", m.group("tps")),
            )
            continue
        dims.append(
            TPSStat(
                id=name,
                name=name,
                ticktime=_to_float("ticktime", m.group("ticktime")),
                tps=_to_float("tps", m.group("tps")),
            )
        )

    if overall is None:
        raise ParseError("overall tps", response, count=len(dims), reason="missing Overall line")
    return dims, overall


def parse_forge_tps(response: str) -> Tuple[List[TPSStat], TPSStat]:
    """
    Parse the output of "forge tps" or "neoforge tps".

    Returns:
        (per-dimension stats, overall stat)

    Raises:
        ParseError: if there is no "Overall" line, even when dimension lines
            were found.
    """
    text = strip_formatting(response)
    if "Mean tick time:" in text:
        return _forge_tps_legacy(text, response)
    return _forge_tps_modern(text, response)


def parse_forge_entities(response: str) -> List[EntityCount]:
    """Parse "<count>: <namespace:entity>" pairs from "forge entity list"."""
    text = FORGE_ENTITY_TOTAL.sub("", strip_formatting(response), count=1)
    return [
        EntityCount(name=m.group("name"), count=_to_int("entity count", m.group("count")))
        for m in FORGE_ENTITY.finditer(text)
    ]


# ============================================================================
# paper tps
# ============================================================================


def parse_paper_tps(response: str) -> List[float]:
    """
    Parse the output of Paper's "tps" command.

    Returns:
        [1m, 5m, 15m] TPS averages
    """
    text = strip_formatting(response).replace("\n", "").strip()
    if text.startswith(PAPER_TPS_PREFIX):
        text = text[len(PAPER_TPS_PREFIX):]

    values = text.split(", ")
    if len(values) != len(PAPER_TPS_WINDOWS):
        raise ParseError("paper tps", text, count=len(values))

    # Paper marks values capped at 20 with a leading "*"
    return [
        _to_float(f"tps {window}", value.strip().lstrip("*"))
        for window, value in zip(PAPER_TPS_WINDOWS, values)
    ]


# ============================================================================
# dynmap stats
# ============================================================================


def parse_dynmap_stats(
    response: str,
) -> Tuple[List[DynmapRenderStat], List[DynmapChunkloadingStat]]:
    """Extract tile render and chunk loading statistics from "dynmap stats"."""
    text = strip_formatting(response)

    render = [
        DynmapRenderStat(
            dim=m.group("dim"),
            processed=_to_int("dynmap processed", m.group("processed")),
            rendered=_to_int("dynmap rendered", m.group("rendered")),
            updated=_to_int("dynmap updated", m.group("updated")),
        )
        for m in DYNMAP_RENDER.finditer(text)
    ]
    chunkloading = [
        DynmapChunkloadingStat(
            state=m.group("state"),
            count=_to_int("dynmap chunk count", m.group("count")),
            duration=_to_float("dynmap chunk duration", m.group("duration")),
        )
        for m in DYNMAP_CHUNKLOADING.finditer(text)
    ]
    return render, chunkloading


# ============================================================================
# tick query
# ============================================================================


def _locale_float(field: str, value: str) -> float:
    # Servers running with e.g. a German locale print "0,5" instead of "0.5"
    return _to_float(field, value.replace(",", "."))


def _require(pattern: re.Pattern, field: str, text: str, response: str) -> re.Match:
    match = pattern.search(text)
    if match is None:
        raise ParseError(field, response, reason="line not found")
    return match


def parse_tick_query(response: str) -> TickStats:
    """Parse the output of the vanilla "tick query" command (1.20.3+)."""
    text = strip_formatting(response)

    target = _require(TICK_TARGET, "target tick rate", text, response)
    average = _require(TICK_AVERAGE, "average tick time", text, response)
    percentiles = _require(TICK_PERCENTILES, "tick percentiles", text, response)

    return TickStats(
        target_rate=_locale_float("target tick rate", target.group("value")),
        average=_locale_float("average tick time", average.group("value")),
        p50=_locale_float("p50", percentiles.group("p50")),
        p95=_locale_float("p95", percentiles.group("p95")),
        p99=_locale_float("p99", percentiles.group("p99")),
    )
