"""
Minecraft Exporter - Main FastAPI Application

This is the HTTP server that:
1. Reads player statistics from the Minecraft world save on every request
2. Runs RCON commands against the live server (if enabled) on every request
3. Returns the results as JSON

There is no background polling and no history: each request is one fresh
scrape.
"""

import logging
import sys
from dataclasses import asdict
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException

from collector_service import CollectorService, count_advancements
from config import config

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.strip().upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Minecraft Exporter")

collector: Optional[CollectorService] = None


@app.on_event("startup")
async def startup_event():
    """
    Validate the configuration and build the collector.

    A bad configuration (unknown server type, missing world directory,
    RCON enabled without password, ...) raises here and aborts startup.
    """
    global collector
    config.validate()
    collector = CollectorService.from_config(config)
    logger.info(
        "Collector started: world=%s, rcon=%s, server type=%s",
        config.MC_WORLD_DIR,
        "enabled" if collector.rcon is not None else "disabled",
        config.MC_SERVER_TYPE,
    )


@app.on_event("shutdown")
async def shutdown_event():
    if collector is not None:
        collector.close()


def _get_collector() -> CollectorService:
    if collector is None:
        raise HTTPException(status_code=503, detail="Collector not initialized")
    return collector


# ============================================================================
# API Endpoints
# ============================================================================


@app.get("/api/healthz")
async def healthz():
    """
    Health check endpoint for the exporter itself.

    Note: This checks if the exporter is running, not the Minecraft server.
    """
    return {"ok": True}


@app.get("/api/players")
async def get_players():
    """
    Statistics of every known player, read from the world save.

    Returns:
        {
            "version": "1.20.4",
            "players": [
                {"uuid": "...", "name": "Steve", "advancements_done": 12, "data": {...}},
                ...
            ]
        }
    """
    # Called synchronously on purpose, like the RCON endpoint below
    c = _get_collector()
    players = c.collect_players()
    return {
        "version": c.version.get(),
        "players": [
            {
                "uuid": p.uuid,
                "name": p.name,
                "advancements_done": count_advancements(p.data.advancements),
                "data": asdict(p.data),
            }
            for p in players
        ],
    }


@app.get("/api/server")
async def get_server():
    """
    Live server statistics via RCON.

    Returns 404 if RCON is disabled. Fields of stats the server type doesn't
    support, or whose command failed, are null.
    """
    # Not run in an executor: mcrcon sets up signal handlers, which only
    # works in the main thread
    c = _get_collector()
    stats = c.collect_server()
    if stats is None:
        raise HTTPException(status_code=404, detail="RCON is disabled")
    return asdict(stats)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.EXPORTER_PORT)
