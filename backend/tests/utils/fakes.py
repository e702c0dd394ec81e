"""In-memory stand-ins for the job pipeline's external collaborators."""
from typing import Any, Optional

from creditflow.adapters.text_transformer import TransformResult


class FakeJobQueue:
    """Records enqueued job ids; raises on enqueue when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enqueued: list[tuple[str, dict[str, Any]]] = []

    async def enqueue(self, job_id: str, metadata: Optional[dict[str, Any]] = None) -> None:
        if self.fail:
            raise ConnectionError("Redis unavailable")
        self.enqueued.append((job_id, metadata or {}))

    async def close(self) -> None:
        return None


class FakeObjectStorage:
    """Dict-backed object storage."""

    def __init__(self):
        self.objects: dict[str, str] = {}

    async def put(self, path: str, content: str) -> str:
        self.objects[path] = content
        return path

    async def get(self, reference: str) -> str:
        return self.objects[reference]


class FakeTextTransformer:
    """Upper-cases text, or raises ``error`` when one is given."""

    def __init__(self, error: Optional[Exception] = None, tokens_used: int = 42):
        self.error = error
        self.tokens_used = tokens_used
        self.calls: list[str] = []

    async def transform(self, text: str, options: Optional[dict[str, Any]] = None) -> TransformResult:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return TransformResult(text=text.upper(), tokens_used=self.tokens_used)
