"""Game-provider callback endpoints — getbalance and balance_adj.

The body is read as raw JSON rather than a pydantic parameter: the provider
expects its own error schema for malformed input, never FastAPI's 422.
"""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.container import get_provider_service
from src.cs_common.response import provider_error
from src.cs_provider.application.service import ProviderCallbackService, ProviderReply
from src.cs_provider.auth.signature import resolve_client_ip

logger = logging.getLogger("cs.provider")

router = APIRouter(tags=["provider"])

_INVALID_JSON = object()


async def _read_json(request: Request) -> Any:
    try:
        return json.loads(await request.body())
    except (ValueError, UnicodeDecodeError):
        return _INVALID_JSON


def _client_ip(request: Request) -> str | None:
    peer = request.client.host if request.client else None
    return resolve_client_ip(request.headers, peer)


def _render(reply: ProviderReply) -> JSONResponse:
    return JSONResponse(status_code=reply.status_code, content=reply.body.to_wire())


def _internal_error() -> JSONResponse:
    return JSONResponse(status_code=500, content=provider_error("Internal server error").to_wire())


@router.post("/getbalance")
async def getbalance(
    request: Request,
    service: Annotated[ProviderCallbackService, Depends(get_provider_service)],
) -> JSONResponse:
    data = await _read_json(request)
    if data is _INVALID_JSON:
        return _render(ProviderReply(400, provider_error("Invalid JSON format")))
    try:
        reply = await service.get_balance(data, _client_ip(request))
    except Exception:
        logger.exception("getbalance failed")
        return _internal_error()
    return _render(reply)


@router.post("/balance_adj")
async def balance_adj(
    request: Request,
    service: Annotated[ProviderCallbackService, Depends(get_provider_service)],
) -> JSONResponse:
    data = await _read_json(request)
    if data is _INVALID_JSON:
        return _render(ProviderReply(400, provider_error("Invalid JSON format")))
    try:
        reply = await service.balance_adj(data, _client_ip(request))
    except Exception:
        logger.exception("balance_adj failed")
        return _internal_error()
    return _render(reply)
