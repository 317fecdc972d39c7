from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)

_write_lock = threading.Lock()


@dataclass(frozen=True)
class CompensationFailure:
    operation: str
    reference: str
    product_id: str
    quantity: int
    error: str
    recorded_at: str


class ReconciliationJournal:
    """Append-only JSON-lines record of stock adjustments that could not be undone.

    Entries are written outside the request's database transaction, so they
    survive the rollback that usually follows a failed checkout.
    """

    def __init__(self, root: Path | None = None):
        self.root = root or get_settings().reconciliation_dir
        self.path = self.root / "compensation_failures.jsonl"

    def record(self, operation: str, reference: str, product_id: str, quantity: int, error: BaseException) -> CompensationFailure:
        entry = CompensationFailure(
            operation=operation,
            reference=reference,
            product_id=product_id,
            quantity=quantity,
            error=f"{type(error).__name__}: {error}",
            recorded_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        logger.error(
            "compensation failed, manual reconciliation required: operation=%s reference=%s product=%s qty=%s error=%s",
            entry.operation,
            entry.reference,
            entry.product_id,
            entry.quantity,
            entry.error,
        )
        line = json.dumps(asdict(entry), sort_keys=True, separators=(",", ":"), ensure_ascii=True)
        with _write_lock:
            self.root.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        return entry

    def entries(self) -> list[CompensationFailure]:
        if not self.path.exists():
            return []
        out: list[CompensationFailure] = []
        for raw in self.path.read_text(encoding="utf-8").splitlines():
            if raw.strip():
                out.append(CompensationFailure(**json.loads(raw)))
        return out
