from __future__ import annotations

import base64
import binascii
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Union
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from .. import config
from ..errors import DecodeError

logger = logging.getLogger(__name__)


class ImageResolver(Protocol):
    def resolve(self, reference: str) -> Image.Image:
        """Return decoded pixels for ``reference`` or raise DecodeError."""


class DefaultImageResolver:
    """
    Resolve image references the editor produces.

    Supported references:
      - ``data:image/...;base64,...`` URIs
      - ``http://`` and ``https://`` URLs
      - local file paths
      - bare base64 payloads
    """

    def __init__(self, timeout: float = config.IMAGE_DECODE_TIMEOUT, client: Optional[httpx.Client] = None):
        self.timeout = timeout
        self.client = client

    def load_bytes(self, reference: str) -> bytes:
        if not reference:
            raise DecodeError(reference, "empty reference")
        if reference.startswith("data:"):
            return self._from_data_uri(reference)
        if reference.startswith(("http://", "https://")):
            return self._fetch(reference)
        path = _as_file(reference)
        if path is not None:
            try:
                return path.read_bytes()
            except OSError as exc:
                raise DecodeError(reference, f"{type(exc).__name__}: {exc}") from exc
        try:
            return base64.b64decode(reference, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(reference, "not a data URI, URL, file or base64 payload") from exc

    def resolve(self, reference: str) -> Image.Image:
        data = self.load_bytes(reference)
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise DecodeError(reference, f"{type(exc).__name__}: {exc}") from exc
        return ImageOps.exif_transpose(image)

    def _from_data_uri(self, reference: str) -> bytes:
        header, sep, payload = reference.partition(",")
        if not sep:
            raise DecodeError(reference, "data URI has no payload")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload + "===")
            except (binascii.Error, ValueError) as exc:
                raise DecodeError(reference, "invalid base64 payload") from exc
        return unquote_to_bytes(payload)

    def _fetch(self, url: str) -> bytes:
        try:
            if self.client is not None:
                response = self.client.get(url, timeout=self.timeout, follow_redirects=True)
            else:
                response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DecodeError(url, f"{type(exc).__name__}: {exc}") from exc
        return response.content


def _as_file(reference: str) -> Optional[Path]:
    try:
        path = Path(reference)
        return path if path.is_file() else None
    except (OSError, ValueError):
        return None


def resolve_many(
    resolver: ImageResolver,
    references: Iterable[Optional[str]],
    timeout: float = config.IMAGE_DECODE_TIMEOUT,
) -> Dict[str, Union[Image.Image, DecodeError]]:
    """
    Decode every distinct reference in parallel.

    Each reference gets its own worker, so all decodes start together and
    share one deadline ``timeout`` seconds away. Each entry maps to the
    decoded image or to the DecodeError that stopped it; a decode still
    running at the deadline counts as a failure and its result is dropped.
    """
    unique = list(dict.fromkeys(ref for ref in references if ref))
    results: Dict[str, Union[Image.Image, DecodeError]] = {}
    if not unique:
        return results

    executor = ThreadPoolExecutor(max_workers=len(unique), thread_name_prefix="decode")
    try:
        futures = {ref: executor.submit(resolver.resolve, ref) for ref in unique}
        wait(futures.values(), timeout=timeout)
        for ref, future in futures.items():
            if not future.done():
                future.cancel()
                results[ref] = DecodeError(ref, f"timed out after {timeout:.1f}s")
                continue
            try:
                results[ref] = future.result()
            except DecodeError as exc:
                results[ref] = exc
            except Exception as exc:
                results[ref] = DecodeError(ref, f"{type(exc).__name__}: {exc}")
    finally:
        # hung resolvers cannot be interrupted; their threads finish in the background
        executor.shutdown(wait=False, cancel_futures=True)

    for ref, outcome in results.items():
        if isinstance(outcome, DecodeError):
            logger.warning("%s", outcome)
    return results
