from __future__ import annotations

import pytest

from bot import JarvisBot
from config import JarvisConfig
from tests.support import StubCompleter


@pytest.fixture
def completer() -> StubCompleter:
    return StubCompleter()


@pytest.fixture
def bot(completer: StubCompleter) -> JarvisBot:
    return JarvisBot(completer, JarvisConfig())
