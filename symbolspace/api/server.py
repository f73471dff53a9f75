"""
SymbolSpace: Runtime API Server
===============================

HTTP surface over a single SymbolRuntime.

Endpoints:
- GET  /health                                -> Runtime status
- GET  /api/v1/clock                          -> Logical clock + space snapshot
- POST /api/v1/symbols                        -> Construct a root symbol
- GET  /api/v1/symbols/{identity}             -> Lookup
- POST /api/v1/symbols/{identity}/transform   -> Derive (replace / merge / literal)
- POST /api/v1/symbols/{identity}/revert      -> Time travel (or structural revert)
- GET  /api/v1/symbols/{identity}/lineage     -> Ancestors / descendants
- GET  /api/v1/audit                          -> Unified audit log + report

Functions cannot be sent over the wire, so function-application
transforms are only available in-process.

Usage:
    uvicorn symbolspace.api.server:app --reload
"""
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..contracts.base import Identity, Permission
from ..core.symbol import Symbol
from ..core.transform import Literal, Merge, Replace
from ..engine import RuntimeConfig, SymbolRuntime
from ..storage import StorageConfig
from .mapper import (
    map_audit_entries, map_revert_outcome, map_symbol_to_dto, map_transform_outcome
)

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

# Global Runtime Instance
runtime_instance: Optional[SymbolRuntime] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the runtime on startup."""
    global runtime_instance

    storage_dir = os.environ.get("SYMBOLSPACE_STORAGE_DIR")

    if storage_dir:
        print(f"[*] Initializing SymbolSpace runtime with file store at: {storage_dir}")
        config = RuntimeConfig(
            storage=StorageConfig(backend_type="file", storage_dir=storage_dir, autosave=True)
        )
    else:
        print("[*] Initializing in-memory SymbolSpace runtime")
        config = RuntimeConfig()

    try:
        runtime_instance = SymbolRuntime(config)
        result = runtime_instance.load()
        if result.is_failure:
            print(f"[!] Could not reload symbols: {result.error.message}")
        elif result.value:
            print(f"[*] Reloaded {result.value} symbols.")
        print("[*] Runtime initialized successfully.")
    except Exception as e:
        print(f"[!] FAILED to initialize runtime: {e}")
        raise e

    yield

    print("[*] Shutting down runtime.")
    runtime_instance = None


app = FastAPI(
    title="SymbolSpace API",
    version="0.1.0",
    description="Versioned, content-addressed symbols with capability-gated mutation",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ConstructBody(BaseModel):
    value: Any = None
    permissions: Optional[List[str]] = None  # e.g. ["read"]; omitted -> full default token
    lifetime: Optional[int] = None


class TransformBody(BaseModel):
    mode: str = "literal"  # "replace" | "merge" | "literal"
    value: Any = None
    data: Optional[Dict[str, Any]] = None


class RevertBody(BaseModel):
    steps: int = 1
    structural: bool = False


# =============================================================================
# HELPERS
# =============================================================================

def _require_runtime() -> SymbolRuntime:
    if not runtime_instance:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    return runtime_instance


def _require_symbol(runtime: SymbolRuntime, identity: str) -> Symbol:
    symbol = runtime.lookup(Identity(value=identity))
    if symbol is None:
        raise HTTPException(status_code=404, detail=f"Symbol not found: {identity}")
    return symbol


def _parse_permissions(names: List[str]) -> int:
    bits = 0
    for name in names:
        bit = Permission.parse(name)
        if bit == Permission.NONE:
            raise HTTPException(status_code=400, detail=f"Unknown permission: {name}")
        bits |= int(bit)
    return bits


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    """System status."""
    runtime = _require_runtime()
    return {
        "status": "online",
        "storage": runtime.config.storage.backend_type,
        "symbols": runtime.space.size,
    }


@app.get("/api/v1/clock")
async def get_clock():
    runtime = _require_runtime()
    state = runtime.snapshot()
    return {"clock": state.clock, "size": state.size, "state_hash": state.state_hash}


@app.post("/api/v1/symbols", status_code=201)
async def construct_symbol(body: ConstructBody):
    runtime = _require_runtime()
    capabilities = None
    if body.permissions is not None:
        capabilities = [
            runtime.issue_token(permissions=_parse_permissions(body.permissions), lifetime=body.lifetime)
        ]
    elif body.lifetime is not None:
        capabilities = [runtime.issue_token(lifetime=body.lifetime)]
    symbol = runtime.construct(body.value, capabilities)
    return map_symbol_to_dto(symbol, runtime.logical_clock())


@app.get("/api/v1/symbols/{identity}")
async def get_symbol(identity: str):
    runtime = _require_runtime()
    symbol = _require_symbol(runtime, identity)
    return map_symbol_to_dto(symbol, runtime.logical_clock())


@app.post("/api/v1/symbols/{identity}/transform")
async def transform_symbol(identity: str, body: TransformBody):
    """
    Derive a new symbol.

    A blocked transform is not an HTTP error: the response carries
    applied=false and the unchanged symbol.
    """
    runtime = _require_runtime()
    symbol = _require_symbol(runtime, identity)

    if body.mode == "replace":
        request = Replace(value=body.value)
    elif body.mode == "merge":
        if body.data is None:
            raise HTTPException(status_code=400, detail="merge requires 'data'")
        request = Merge(fields=body.data)
    elif body.mode == "literal":
        request = Literal(payload=body.value)
    else:
        raise HTTPException(status_code=400, detail=f"Unsupported mode: {body.mode}")

    outcome = runtime.transform_with_outcome(symbol, request)
    return map_transform_outcome(outcome, runtime.logical_clock())


@app.post("/api/v1/symbols/{identity}/revert")
async def revert_symbol(identity: str, body: RevertBody):
    runtime = _require_runtime()
    symbol = _require_symbol(runtime, identity)

    if body.structural:
        outcome = runtime.revert_structurally(symbol)
        return map_transform_outcome(outcome, runtime.logical_clock())

    if body.steps < 0:
        raise HTTPException(status_code=400, detail="steps must be non-negative")
    outcome = runtime.revert_with_outcome(symbol, body.steps)
    return map_revert_outcome(outcome, runtime.logical_clock())


@app.get("/api/v1/symbols/{identity}/lineage")
async def get_lineage(identity: str):
    runtime = _require_runtime()
    symbol = _require_symbol(runtime, identity)
    lineage = runtime.get_lineage()

    return {
        "identity": symbol.identity.value,
        "ancestry": [a.value for a in symbol.ancestry],
        "resolvable": [s.identity.value for s in runtime.history(symbol)],
        "ancestors": sorted(lineage.get_ancestors(identity)) if lineage else [],
        "descendants": sorted(lineage.get_descendants(identity)) if lineage else [],
    }


@app.get("/api/v1/audit")
async def get_audit(
    layer: Optional[List[str]] = Query(default=None),
    limit: int = 100
):
    runtime = _require_runtime()
    entries = runtime.get_audit_log(layers=layer)
    return {
        "report": runtime.get_audit_report(),
        "entries": map_audit_entries(entries[-limit:] if limit > 0 else []),
    }
