"""Claude API vision backend for food item detection."""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

from ..models import ObservedItem
from . import PROMPT, VisionBackend, parse_response


class ClaudeVisionBackend(VisionBackend):
    """Detect food items using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def detect_items(self, image_paths: list[str]) -> list[ObservedItem]:
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content: list[dict] = []
        for path in image_paths:
            data = Path(path).read_bytes()
            media_type = mimetypes.guess_type(path)[0] or "image/jpeg"
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": media_type,
                        "data": base64.standard_b64encode(data).decode(),
                    },
                }
            )
        content.append({"type": "text", "text": PROMPT})

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=4096,
            messages=[{"role": "user", "content": content}],
        )

        return parse_response(response.content[0].text)
