"""
velocity/api.py
─────────────────────────────────────────────────────────────────────────────
Dispatch Velocity — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module (dashboard backend, scripts):
         from velocity.api import VelocityAPI
         api   = VelocityAPI()
         board = api.triage(rows)

  2. FastAPI HTTP server (dashboard UI via fetch()):
         python -m velocity.api                   # default: port 8766
         python -m velocity.api --port 9000
         uvicorn velocity.api:app --port 8766

ENDPOINTS:
  POST /triage    — rank a batch of lead/job rows into the triage board
  POST /classify  — archetype, score, tags and narrative for one row
  GET  /config    — active configuration and thresholds
  GET  /health    — liveness ping

CORS: localhost-only (127.0.0.1 / ::1). Not exposed to network by default.

PRIVACY NOTE:
  Records are triaged in memory and discarded. Nothing is stored and no
  external HTTP calls are made. Logs carry record ids and counts only.
"""

import argparse
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from velocity import __version__
from velocity.config import load_config, thresholds_from_config
from velocity.engine import (
    board_to_dict,
    parse_archetype,
    result_to_dict,
    triage,
    triage_board,
)
from velocity.models.record import Archetype
from velocity.parsers.record_parser import parse_record, parse_records

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class VelocityAPI:
    """
    Pure-Python wrapper around the triage engine.
    No HTTP layer required — import and call directly.

    Usage:
        api   = VelocityAPI()
        board = api.triage(rows, archetype="HAZARD", limit=20)
        card  = api.classify(row)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config     = config if config is not None else load_config()
        self.thresholds = thresholds_from_config(self.config)

    def triage(
        self,
        rows:            List[Dict[str, Any]],
        now:             Optional[datetime] = None,
        archetype:       Optional[str] = None,
        limit:           Optional[int] = None,
        include_signals: bool = False,
    ) -> Dict[str, Any]:
        """
        Rank rows into board order.

        Args:
            rows:      lead/job dicts as stored by the ingestion layer
            now:       evaluation time (defaults to current UTC time)
            archetype: restrict the board to one column
            limit:     max results returned; counts always cover every row
        """
        column  = parse_archetype(archetype)
        records = parse_records(rows)
        board   = triage_board(records, now, column, limit, thresholds=self.thresholds)

        logger.info(f"Triage request | rows={len(rows)} | returned={len(board.results)}")
        return board_to_dict(board, include_signals)

    def classify(
        self,
        row:             Dict[str, Any],
        now:             Optional[datetime] = None,
        include_signals: bool = True,
    ) -> Dict[str, Any]:
        record = parse_record(row)
        return result_to_dict(triage(record, now, self.thresholds), include_signals)

    def get_config(self) -> Dict[str, Any]:
        return {
            "config":     self.config,
            "thresholds": asdict(self.thresholds),
            "archetypes": [a.value for a in Archetype],
        }


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class TriageRequest(BaseModel):
    records:         List[Dict[str, Any]] = Field(default_factory=list)
    now:             Optional[datetime]   = None
    archetype:       Optional[str]        = None
    limit:           Optional[int]        = Field(None, ge=1, le=1000)
    include_signals: bool                 = False


class ClassifyRequest(BaseModel):
    record:          Dict[str, Any]
    now:             Optional[datetime] = None
    include_signals: bool               = True


def _build_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Build and return the FastAPI application instance."""
    _api = VelocityAPI(config=config)
    port = _api.config.get("api_port", 8766)

    _app = FastAPI(
        title       = "Dispatch Velocity API",
        description = "Signal extraction and priority triage for inbound leads and jobs",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # CORS: only allow localhost origins
    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            f"http://localhost:{port}",
            "http://127.0.0.1",
            f"http://127.0.0.1:{port}",
        ],
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.post("/triage", summary="Rank records into the triage board")
    def triage_endpoint(req: TriageRequest):
        """
        Classify, score and narrate every record, then return them in board
        order. Per-archetype counts always cover the full batch, before the
        archetype filter and the limit are applied.
        """
        try:
            return _api.triage(
                rows            = req.records,
                now             = req.now,
                archetype       = req.archetype,
                limit           = req.limit,
                include_signals = req.include_signals,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Triage endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Triage failed")

    @_app.post("/classify", summary="Triage a single record")
    def classify_endpoint(req: ClassifyRequest):
        try:
            return _api.classify(req.record, req.now, req.include_signals)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Classify endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Classification failed")

    @_app.get("/config", summary="Active configuration")
    def get_config():
        return _api.get_config()

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":  "ok",
            "version": __version__,
        }

    return _app


# Module-level app instance, used by uvicorn velocity.api:app
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT: python -m velocity.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn

    config = load_config()
    parser = argparse.ArgumentParser(
        prog        = "velocity.api",
        description = "Dispatch Velocity API Server — localhost triage service",
    )
    parser.add_argument("--port", type=int, default=config.get("api_port", 8766),
                        help="Port to bind (default: 8766)")
    parser.add_argument("--host", type=str, default=config.get("api_host", "127.0.0.1"),
                        help="Host to bind — DO NOT change to 0.0.0.0 on shared networks")
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    print(f"""
+--------------------------------------------------+
|   Dispatch Velocity API Server v{__version__:<17}|
+--------------------------------------------------+
|  Local:    http://{args.host}:{args.port}
|  Docs:     http://{args.host}:{args.port}/docs
|  Health:   http://{args.host}:{args.port}/health
+--------------------------------------------------+
""")

    uvicorn.run(
        _build_app(config),
        host      = args.host,
        port      = args.port,
        log_level = "info",
    )
