from __future__ import annotations

import json
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaError

from caxton.services.pairing import PairingProtocol, ValidationError

router = APIRouter(prefix="/api", tags=["pairing"])

_Model = TypeVar("_Model", bound=BaseModel)


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GetCodeRequest(_Body):
    pushtoken: str | None = None
    appversion: str | None = None


class GetTokenRequest(_Body):
    code: str | None = None
    appname: str | None = None


class SendRequest(_Body):
    token: str | None = None
    url: str | None = None
    appname: str | None = None
    message: str | None = None
    tag: str | None = None
    sound: str | None = None


def get_protocol(request: Request) -> PairingProtocol:
    return request.app.state.protocol


async def read_body(request: Request, model: type[_Model]) -> _Model:
    """Parse a JSON or form-encoded body into ``model``; an empty body yields an empty model."""
    raw = await request.body()
    data: Any = {}
    if raw.strip():
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValidationError(detail="body is not valid JSON") from exc
        else:
            form = await request.form()
            data = {key: value for key, value in form.items() if isinstance(value, str)}
    if not isinstance(data, dict):
        raise ValidationError(detail="body must be an object")
    try:
        return model.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(detail=exc.errors()) from exc


@router.post("/getcode")
async def get_code(request: Request, protocol: PairingProtocol = Depends(get_protocol)) -> dict:
    body = await read_body(request, GetCodeRequest)
    code = await protocol.issue_code(body.pushtoken, app_version=body.appversion)
    return {"code": code}


@router.post("/gettoken")
async def get_token(request: Request, protocol: PairingProtocol = Depends(get_protocol)) -> dict:
    body = await read_body(request, GetTokenRequest)
    envelope = await protocol.redeem_code(body.code, body.appname)
    return {"token": envelope}


@router.post("/send")
async def send(request: Request, protocol: PairingProtocol = Depends(get_protocol)) -> dict:
    body = await read_body(request, SendRequest)
    await protocol.verify_and_send(
        body.token,
        body.appname,
        body.url,
        message=body.message,
        tag=body.tag,
        sound=body.sound,
    )
    return {"ok": "Ok"}
