"""Remote and inline asset retrieval.

References are either ``http(s)://`` locators, fetched with httpx, or
``data:`` payloads decoded in place. Transport failures are retried a few
times; non-success statuses are not.
"""

import base64
import binascii
import logging
import mimetypes
import time
from typing import Literal, Optional
from urllib.parse import unquote_to_bytes, urlparse

import httpx

from cardclip.config import Settings, get_settings
from cardclip.exceptions import AssetTooLargeError, FetchError, ValidationError
from cardclip.media import MediaAsset

logger = logging.getLogger(__name__)

AssetKind = Literal["audio", "image"]

AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
}
DEFAULT_AUDIO_MIME = "audio/mpeg"
DEFAULT_IMAGE_MIME = "image/png"

RETRY_BACKOFF_S = 0.25


def _extension(reference: str) -> str:
    path = urlparse(reference).path
    name = path.rsplit("/", 1)[-1]
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def infer_mime_type(reference: str, kind: AssetKind = "audio", content_type: Optional[str] = None) -> str:
    """Infer a MIME type from the reference's file extension.

    Audio falls back to audio/mpeg. Images try the extension, then the
    response Content-Type, then image/png.
    """
    ext = _extension(reference)
    if kind == "audio":
        return AUDIO_MIME_TYPES.get(ext, DEFAULT_AUDIO_MIME)

    guessed, _ = mimetypes.guess_type(f"file.{ext}") if ext else (None, None)
    if guessed and guessed.startswith("image/"):
        return guessed
    if content_type:
        declared = content_type.split(";", 1)[0].strip().lower()
        if declared.startswith("image/"):
            return declared
    return DEFAULT_IMAGE_MIME


def is_data_reference(reference: str) -> bool:
    return reference[:5].lower() == "data:"


def validate_reference(reference: str, field: str) -> str:
    """Check that a reference is an http(s) URL or a data: payload.

    Raises:
        ValidationError: For any other shape
    """
    reference = (reference or "").strip()
    if not reference:
        raise ValidationError(f"{field} is empty", stage="validate")
    if is_data_reference(reference):
        if "," not in reference:
            raise ValidationError(f"{field} is not a valid data reference", stage="validate")
        return reference
    parsed = urlparse(reference)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL or a data: reference", stage="validate")
    return reference


def parse_data_reference(reference: str, kind: AssetKind = "image") -> MediaAsset:
    """Decode a ``data:[<mime>][;base64],<payload>`` reference.

    Raises:
        ValidationError: If the payload is malformed
    """
    try:
        header, payload = reference.split(",", 1)
    except ValueError as e:
        raise ValidationError("Malformed data reference", stage="fetch") from e

    params = header[5:].split(";")
    mime_type = params[0].strip().lower() or (DEFAULT_IMAGE_MIME if kind == "image" else DEFAULT_AUDIO_MIME)
    try:
        if "base64" in (p.strip().lower() for p in params[1:]):
            data = base64.b64decode(payload, validate=False)
        else:
            data = unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Malformed base64 payload in data reference", stage="fetch", cause=str(e)) from e

    if not data:
        raise ValidationError("Data reference has an empty payload", stage="fetch")
    return MediaAsset(data=data, mime_type=mime_type, source=header + ",...")


class AssetFetcher:
    """Fetches audio and image references into MediaAssets."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.settings.fetch_timeout_s,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def fetch(self, reference: str, kind: AssetKind = "audio") -> MediaAsset:
        """Retrieve a reference as a MediaAsset.

        Args:
            reference: http(s) URL or data: reference
            kind: Whether the asset is audio or an image (drives MIME inference)

        Returns:
            MediaAsset with the payload bytes and MIME type

        Raises:
            ValidationError: Malformed reference or asset over the size cap
            FetchError: Network failure or non-success status
        """
        limit = self.settings.max_asset_bytes
        if is_data_reference(reference):
            asset = parse_data_reference(reference, kind)
            if asset.size > limit:
                raise AssetTooLargeError(reference, limit)
            return asset

        validate_reference(reference, f"{kind} reference")
        attempts = max(1, self.settings.fetch_retries + 1)
        for attempt in range(1, attempts + 1):
            try:
                return self._download(reference, kind, limit)
            except httpx.TransportError as e:
                if attempt >= attempts:
                    logger.error(f"[FETCH] {reference} failed after {attempt} attempts: {e!r}")
                    raise FetchError(
                        f"Could not reach {kind} source {reference}", stage="fetch", cause=str(e) or type(e).__name__
                    ) from e
                logger.warning(f"[FETCH] Transport error on attempt {attempt}/{attempts} for {reference}: {e!r}")
                time.sleep(RETRY_BACKOFF_S * attempt)
        raise FetchError(f"Could not reach {kind} source {reference}", stage="fetch")

    def _download(self, url: str, kind: AssetKind, limit: int) -> MediaAsset:
        with self.client.stream("GET", url) as response:
            if not response.is_success:
                raise FetchError(
                    f"Failed to fetch {kind} from {url}",
                    stage="fetch",
                    cause=f"HTTP {response.status_code}",
                )

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise AssetTooLargeError(url, limit)

            chunks: list[bytes] = []
            received = 0
            for chunk in response.iter_bytes():
                received += len(chunk)
                if received > limit:
                    raise AssetTooLargeError(url, limit)
                chunks.append(chunk)

            mime_type = infer_mime_type(url, kind, response.headers.get("content-type"))

        data = b"".join(chunks)
        if not data:
            raise FetchError(f"Empty {kind} response from {url}", stage="fetch")
        logger.info(f"[FETCH] {kind} {url} ({len(data)} bytes, {mime_type})")
        return MediaAsset(data=data, mime_type=mime_type, source=url)
