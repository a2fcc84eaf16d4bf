import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response

from app import config
from app.errors import InvalidURL, MissingParameter, OriginNotAllowed, UpstreamFetchFailure
from app.services.proxy import forward_request
from app.validation import require_absolute_url

logger = logging.getLogger(__name__)

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/proxy", methods=PROXY_METHODS)
@router.api_route("/proxy/{path:path}", methods=PROXY_METHODS)
async def proxy(request: Request, path: str = ""):
    """Forward the request to the ``url`` query parameter and relay the response.

    Anything after ``/proxy/`` is appended to the target path; query params other
    than ``url`` are passed through.
    """
    try:
        url = require_absolute_url(request.query_params.get("url"))
    except MissingParameter:
        return PlainTextResponse("Missing url parameter", status_code=400)
    except InvalidURL:
        return PlainTextResponse("Invalid URL", status_code=400)

    extra_params = [(k, v) for k, v in request.query_params.multi_items() if k != "url"]
    body = await request.body()

    try:
        upstream = await forward_request(
            request.method,
            url,
            headers=request.headers.items(),
            body=body,
            subpath=path,
            extra_params=extra_params,
            allowed_hosts=config.PROXY_ALLOWED_HOSTS,
        )
    except OriginNotAllowed as e:
        logger.warning(f"[proxy] Rejected {url}: {e}")
        return PlainTextResponse("Target host not allowed", status_code=403)
    except UpstreamFetchFailure as e:
        return PlainTextResponse(f"Bad gateway: {e}", status_code=502)

    response = Response(content=upstream.content, status_code=upstream.status_code)
    for name, value in upstream.headers:
        response.headers.append(name, value)
    return response
