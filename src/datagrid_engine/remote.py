"""Remote bridge: turns a descriptor into a call to a caller-supplied fetch function.

The engine implements no transport.  A remote data source is any async
callable::

    async def fetch(descriptor: QueryDescriptor) -> FetchResponse | Mapping:
        ...  # {"rows": [...], "totalMatched": 123}

The bridge only shapes the result: it defaults ``is_loading``, clips rows
to the page size and converts exceptions or malformed payloads into
:class:`~datagrid_engine.errors.FetchFailed`.  Deciding whether a response
is still current belongs to the controller.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from datagrid_engine.errors import FetchFailed
from datagrid_engine.models import QueryDescriptor, ViewResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResponse:
    """What a remote source returns for one descriptor."""

    rows: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    total_matched: int = 0


FetchFunction = Callable[[QueryDescriptor], Awaitable[FetchResponse | Mapping[str, Any]]]
FetchOutcome = ViewResult | FetchFailed


def _unpack(payload: FetchResponse | Mapping[str, Any]) -> tuple[Sequence[Any], Any]:
    if isinstance(payload, FetchResponse):
        return payload.rows, payload.total_matched
    if isinstance(payload, Mapping):
        if "rows" not in payload:
            raise ValueError("response has no 'rows'")
        total = payload.get("totalMatched", payload.get("total_matched"))
        if total is None:
            raise ValueError("response has no 'totalMatched'")
        return payload["rows"], total
    raise TypeError(f"unsupported response type: {type(payload).__name__}")


class RemoteBridge:
    """Adapter between the controller and a caller-supplied fetch function.

    Args:
        fetch: The async fetch function.
        id_field: Every returned row must carry this field.
    """

    def __init__(self, fetch: FetchFunction, id_field: str) -> None:
        self._fetch = fetch
        self.id_field = id_field

    def shape(self, descriptor: QueryDescriptor, payload: FetchResponse | Mapping[str, Any]) -> ViewResult:
        """Validate *payload* and turn it into a :class:`ViewResult`.

        Raises:
            ValueError / TypeError: If the payload is malformed.
        """
        rows, total = _unpack(payload)
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise ValueError(f"totalMatched must be a non-negative integer, got {total!r}")
        if isinstance(rows, (str, bytes)) or not isinstance(rows, Sequence):
            raise TypeError("rows must be a sequence of mappings")

        shaped: list[dict[str, Any]] = []
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise TypeError(f"row {index} is not a mapping")
            if self.id_field not in row:
                raise ValueError(f"row {index} has no {self.id_field!r} field")
            shaped.append(dict(row))

        if len(shaped) > descriptor.page_size:
            logger.warning(
                "[DataTable] remote returned %d rows for page_size=%d; clipping",
                len(shaped),
                descriptor.page_size,
            )
            shaped = shaped[: descriptor.page_size]

        return ViewResult(rows=tuple(shaped), total_matched=total, is_loading=False)

    async def fetch(self, descriptor: QueryDescriptor) -> FetchOutcome:
        """Run the fetch function and shape its result.

        Never raises for transport or payload problems: those come back as
        :class:`FetchFailed`.  Task cancellation still propagates.
        """
        t0 = time.perf_counter()
        try:
            payload = await self._fetch(descriptor)
            result = self.shape(descriptor, payload)
        except Exception as exc:  # noqa: BLE001 -- surfaced to the caller as FetchFailed
            logger.warning("[DataTable] remote fetch failed: %r", exc)
            return FetchFailed(exc)

        logger.debug(
            "[DataTable] remote fetch: page=%d, rows=%d, total=%d, elapsed=%.1fms",
            descriptor.page,
            len(result.rows),
            result.total_matched,
            (time.perf_counter() - t0) * 1000,
        )
        return result
