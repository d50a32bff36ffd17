# form_coach/advice_client.py   HTTP client for the remote coaching phrase service

import json
import logging
from typing import Dict, Optional

import requests
from pydantic import ValidationError

from form_coach import config
from form_coach.models import AdviceRequest, AdviceResponse

logger = logging.getLogger(__name__)


class AdviceError(Exception):
    """The advice service could not produce a usable phrase."""


def _parse_reply_json(raw: str) -> Optional[Dict]:
    """Extract a JSON object from a raw reply, tolerating ``` fences and chatter."""
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:].strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        s = text.index("{")
        e = text.rindex("}") + 1
        return json.loads(text[s:e])
    except ValueError:
        return None


class AdviceClient:
    """
    Posts an AdviceRequest to the coaching endpoint and returns the
    feedback phrase. Any failure (offline, timeout, HTTP error, garbage
    body, empty phrase) raises AdviceError.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.url = url if url is not None else config.ADVICE_URL
        self.timeout = timeout if timeout is not None else config.ADVICE_TIMEOUT_S
        self.session = session or requests.Session()

    @property
    def online(self) -> bool:
        return bool(self.url)

    def __call__(self, request: AdviceRequest) -> str:
        if not self.online:
            raise AdviceError("no advice endpoint configured")

        try:
            resp = self.session.post(self.url, json=request.model_dump(mode="json"), timeout=self.timeout)
        except requests.RequestException as e:
            raise AdviceError(f"advice request failed: {e}") from e

        if resp.status_code != 200:
            raise AdviceError(f"advice service returned {resp.status_code}: {resp.text[:200]}")

        parsed = _parse_reply_json(resp.text)
        if parsed is None:
            raise AdviceError(f"could not parse advice reply: {resp.text[:200]!r}")

        try:
            reply = AdviceResponse.model_validate(parsed)
        except ValidationError as e:
            raise AdviceError(f"unexpected advice reply shape: {e}") from e

        message = reply.feedback.strip()
        if not message:
            raise AdviceError("advice service returned an empty phrase")
        return message

    def close(self) -> None:
        self.session.close()
