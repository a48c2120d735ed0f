"""Inline data references for rendered artifacts."""

import base64

from cardclip.exceptions import InternalError
from cardclip.media import RenderedArtifact


def to_data_reference(artifact: RenderedArtifact) -> str:
    """Encode an artifact as ``data:<mime>;base64,<payload>``.

    Raises:
        InternalError: If the artifact has no bytes
    """
    if not artifact.data:
        raise InternalError("Artifact has no content", stage="encode_artifact")
    payload = base64.b64encode(artifact.data).decode("ascii")
    return f"data:{artifact.mime_type};base64,{payload}"
