"""Process-wide OpenAI client used for the Assistants API.

Components receive the client by injection; this module only provides
the lazily created default instance.
"""

from __future__ import annotations

import threading

from openai import OpenAI

from voice_calendar.config import OPENAI_API_KEY

_client: OpenAI | None = None
_client_lock = threading.Lock()


def get_openai_client() -> OpenAI:
    """Return a module-level OpenAI client singleton.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation, not on every subsequent call.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = OpenAI(api_key=OPENAI_API_KEY)
    return _client
