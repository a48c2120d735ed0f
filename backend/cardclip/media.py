"""Binary payloads passed between pipeline stages."""

import base64
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MediaAsset:
    """A fetched or decoded image/audio payload."""

    data: bytes
    mime_type: str
    source: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_reference(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


@dataclass(frozen=True)
class RenderedArtifact:
    """Terminal output of the pipeline."""

    data: bytes
    mime_type: str
    width: int
    height: int
    duration_seconds: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.data)
