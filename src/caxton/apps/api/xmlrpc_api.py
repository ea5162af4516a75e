"""metaWeblog XML-RPC shim.

Blog-posting integrations (IFTTT and the like) can only speak metaWeblog, so
a "new post" is treated as a send request: the username is the app name, the
password is the envelope, the post title is the url and the post description
is the message.
"""
from __future__ import annotations

import logging
import xmlrpc.client
from typing import Any, Awaitable, Callable
from xml.parsers.expat import ExpatError

from fastapi import APIRouter, Depends, Request, Response

from caxton.services.pairing import DispatchFailed, PairingError, PairingProtocol

from .pairing_api import get_protocol

router = APIRouter(tags=["xmlrpc"])

logger = logging.getLogger(__name__)

POST_DONE_URL = "http://post/done/ok"

FAULT_PARSE = -32700
FAULT_METHOD_NOT_FOUND = -32601
FAULT_APPLICATION = -32500

_Method = Callable[[PairingProtocol, tuple], Awaitable[Any]]


async def _supported_methods(protocol: PairingProtocol, params: tuple) -> list[str]:
    logger.info("xmlrpc supportedMethods called")
    return ["metaWeblog.getRecentPosts"]


async def _get_recent_posts(protocol: PairingProtocol, params: tuple) -> list:
    return []


async def _new_post(protocol: PairingProtocol, params: tuple) -> str:
    blog_id, username, password, post, *_ = (*params, None, None, None, None, None)
    post = post if isinstance(post, dict) else {}
    url = post.get("title")
    if not all(isinstance(value, str) and value for value in (url, username, password)):
        raise xmlrpc.client.Fault(FAULT_APPLICATION, "Invalid token")
    description = post.get("description")
    message = str(description) if description not in (None, "") else None
    try:
        await protocol.verify_and_send(password, username, url, message=message)
    except DispatchFailed as exc:
        logger.warning("push from xmlrpc failed: %s", exc.__cause__)
        raise xmlrpc.client.Fault(FAULT_APPLICATION, "Push notification failed") from exc
    except PairingError as exc:
        logger.info("invalid token in xmlrpc send request for blog %r: %s", blog_id, exc.__cause__ or exc)
        raise xmlrpc.client.Fault(FAULT_APPLICATION, "Invalid token") from exc
    logger.info("message successfully sent from xmlrpc")
    return POST_DONE_URL


METHODS: dict[str, _Method] = {
    "mt.supportedMethods": _supported_methods,
    "metaWeblog.getRecentPosts": _get_recent_posts,
    "metaWeblog.newPost": _new_post,
}


def _xml(body: str) -> Response:
    return Response(content=body, media_type="text/xml")


@router.post("/xmlrpc.php")
async def xmlrpc_endpoint(request: Request, protocol: PairingProtocol = Depends(get_protocol)) -> Response:
    protocol.analytics.event("Incoming XMLRPC", request.headers.get("user-agent") or "unspecified")
    raw = await request.body()
    try:
        params, method_name = xmlrpc.client.loads(raw)
    except (ExpatError, xmlrpc.client.ResponseError, ValueError) as exc:
        logger.warning("unparseable xmlrpc request: %s", exc)
        return _xml(xmlrpc.client.dumps(xmlrpc.client.Fault(FAULT_PARSE, "Parse error")))
    method = METHODS.get(method_name or "")
    if method is None:
        return _xml(xmlrpc.client.dumps(xmlrpc.client.Fault(FAULT_METHOD_NOT_FOUND, f"Unknown method {method_name}")))
    try:
        result = await method(protocol, params)
    except xmlrpc.client.Fault as fault:
        return _xml(xmlrpc.client.dumps(fault))
    return _xml(xmlrpc.client.dumps((result,), methodresponse=True, allow_none=True))
