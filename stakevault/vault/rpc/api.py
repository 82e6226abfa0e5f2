# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from typing import Optional, Any
from prometheus_client import CONTENT_TYPE_LATEST
from ...protocol.types.call import VaultCall
from ...protocol.types.common import VaultError, NotOwner, ValidationError
from ..core.controller import VaultController
from ..observability.metrics import update_metrics, render_metrics
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeVault Node RPC")

vault: Optional[VaultController] = None


class CallResponse(BaseModel):
    call_hash: str
    status: str
    result: Any = None


def _require_vault() -> VaultController:
    if not vault:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return vault


@app.get("/status")
async def get_status():
    return _require_vault().status()


@app.get("/stake/{address}")
async def get_stake(address: str):
    return _require_vault().stake_info(address)


@app.get("/balance/{address}")
async def get_balance(address: str):
    v = _require_vault()
    return {
        "address": address,
        "balance": v.ledger.balance_of(address),
        "allowance": v.ledger.allowance(address, v.vault_address),
        "nonce": v.get_nonce(address),
    }


@app.get("/nonce/{address}")
async def get_nonce(address: str):
    return {"address": address, "nonce": _require_vault().get_nonce(address)}


@app.post("/call", response_model=CallResponse)
def submit_call(call: VaultCall):
    v = _require_vault()
    try:
        result = v.apply_call(call)
    except NotOwner as e:
        raise HTTPException(status_code=403, detail={"error": type(e).__name__, "message": str(e)})
    except (VaultError, ValidationError) as e:
        raise HTTPException(status_code=400, detail={"error": type(e).__name__, "message": str(e)})
    logger.info(f"Applied {call.method.value} from {call.sender}")
    return CallResponse(call_hash=call.hash(), status="applied", result=result)


@app.get("/metrics")
async def get_metrics():
    update_metrics(_require_vault())
    return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)
