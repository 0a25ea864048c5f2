"""HTTP transport for the conversion engine.

Commands are JSON RPCs: ``POST /rpc/<command>`` with the arguments as the
body, answered by ``{"result": ...}`` or ``{"error": "..."}``. Push events
arrive as server-sent events on ``GET /events``.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import (
    ConversionCancelled,
    EngineError,
    EngineTransportError,
    OutputConflict,
    is_cancellation,
    is_conflict,
)
from .base import (
    ConversionEngine,
    ConversionRequest,
    ConversionResult,
    FileInfoResult,
    ThumbnailRequest,
    ThumbnailResult,
)
from .events import EngineEventRouter, parse_sse_block

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class HttpConversionEngine(ConversionEngine):
    """ConversionEngine over httpx.AsyncClient.

    Conversions can run for a long time, so ``convert_file`` is sent without
    a read timeout; every other command uses ``timeout_s``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout_s, transport=transport
        )

    async def _call(self, command: str, payload: Dict[str, Any], **kwargs) -> Any:
        logger.debug("rpc %s", command)
        try:
            response = await self._client.post(f"/rpc/{command}", json=payload, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise EngineTransportError(f"{command} failed: {e}") from e
        except ValueError as e:
            raise EngineTransportError(f"{command} returned invalid JSON") from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            if is_cancellation(error):
                raise ConversionCancelled(error)
            if is_conflict(error):
                raise OutputConflict(error)
            raise EngineError(error)
        return body.get("result") if isinstance(body, dict) else None

    async def get_files_info_batch(self, paths: List[str]) -> List[FileInfoResult]:
        result = await self._call("get_files_info_batch", {"paths": paths})
        return [FileInfoResult.model_validate(r) for r in result or []]

    async def generate_thumbnail(self, request: ThumbnailRequest) -> ThumbnailResult:
        result = await self._call(
            "generate_thumbnail", {"request": request.model_dump(mode="json")}
        )
        return ThumbnailResult.model_validate(result)

    async def generate_thumbnails_batch(
        self, requests: List[ThumbnailRequest]
    ) -> List[ThumbnailResult]:
        result = await self._call(
            "generate_thumbnails_batch",
            {"requests": [r.model_dump(mode="json") for r in requests]},
        )
        return [ThumbnailResult.model_validate(r) for r in result or []]

    async def delete_thumbnails(self, ids: List[str]) -> None:
        await self._call("delete_thumbnails", {"ids": ids})

    async def cleanup_all_thumbnails(self) -> None:
        await self._call("cleanup_all_temp_thumbnails", {})

    async def convert_file(self, request: ConversionRequest) -> ConversionResult:
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)
        result = await self._call(
            "convert_file", {"request": request.model_dump(mode="json")}, timeout=timeout
        )
        return ConversionResult.model_validate(result)

    async def cancel_conversion(self, item_id: str) -> None:
        await self._call("cancel_conversion", {"id": item_id})

    async def check_file_exists(self, path: str) -> bool:
        return bool(await self._call("check_file_exists", {"path": path}))

    async def listen(self, router: EngineEventRouter) -> None:
        """Consume the event stream until the connection closes.

        Run as a background task; cancel the task to stop listening.
        """
        block: List[str] = []
        try:
            async with self._client.stream("GET", "/events", timeout=None) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if line:
                        block.append(line)
                        continue
                    decoded = parse_sse_block(block)
                    block = []
                    if decoded:
                        router.dispatch(*decoded)
        except httpx.HTTPError as e:
            raise EngineTransportError(f"event stream failed: {e}") from e

        decoded = parse_sse_block(block)
        if decoded:
            router.dispatch(*decoded)

    async def aclose(self) -> None:
        await self._client.aclose()
