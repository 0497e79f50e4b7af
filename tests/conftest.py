from __future__ import annotations

import pytest

from llm import llm_stream


@pytest.fixture(autouse=True)
def _offline_token_count(monkeypatch):
    """tiktoken downloads its encodings on first use; count words instead."""
    monkeypatch.setattr(llm_stream, "count_tokens", lambda text, model=None: len(text.split()))
