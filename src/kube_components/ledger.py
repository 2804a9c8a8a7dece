"""Install ledger - last run per component.

Records what each installer run did (outcome, versions, failing stage) so
the check phase can answer "did containerd install, and when?" without
digging through the journal.

Ledger path is injected by the caller; nothing here is hardcoded.
"""

import json
import logging
from dataclasses import asdict
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    """Entry in the install ledger."""

    component: str
    outcome: str
    previous_version: str
    new_version: str | None
    stage: str | None
    recorded_at: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerEntry":
        """Create from dictionary."""
        return cls(**data)


class InstallLedger:
    """
    Install ledger manager (with injected ledger path).

    Ledger format (JSON):
    {
      "version": "1.0",
      "components": {
        "runc": {
          "component": "runc",
          "outcome": "installed",
          "previous_version": "none",
          "new_version": "1.1.12",
          "stage": null,
          "recorded_at": "2025-10-26T12:00:00+00:00"
        }
      }
    }
    """

    VERSION = "1.0"

    def __init__(self, ledger_path: Path):
        """Initialize ledger with caller-provided path.

        Example:
            >>> ledger = InstallLedger(ledger_path=Path("/var/lib/kube-components/ledger.json"))
        """
        self.ledger_path = ledger_path
        self._data: dict[str, LedgerEntry] = {}
        self._load()

    def _load(self) -> None:
        """Load ledger file if it exists."""
        if not self.ledger_path.exists():
            self._data = {}
            return

        try:
            with open(self.ledger_path) as f:
                data = json.load(f)

            if data.get("version") != self.VERSION:
                logger.warning(f"Ledger version mismatch: expected {self.VERSION}, got {data.get('version')}")

            components = data.get("components", {})
            self._data = {name: LedgerEntry.from_dict(entry) for name, entry in components.items()}

            logger.debug(f"Loaded {len(self._data)} entries from ledger")

        except Exception as e:
            logger.warning(f"Ignoring unreadable ledger {self.ledger_path}: {e}")
            self._data = {}

    def _save(self) -> None:
        """Save ledger file (write to temp, then rename)."""
        data = {
            "version": self.VERSION,
            "components": {name: entry.to_dict() for name, entry in self._data.items()},
        }

        tmp_path = self.ledger_path.with_name(self.ledger_path.name + ".tmp")
        try:
            self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.ledger_path)
            logger.debug(f"Saved ledger with {len(self._data)} entries")
        except OSError as e:
            logger.error(f"Failed to save ledger {self.ledger_path}: {e}")

    def record(
        self,
        component: str,
        outcome: str,
        previous_version: str,
        new_version: str | None = None,
        stage: str | None = None,
    ) -> LedgerEntry:
        """
        Record the result of one installer run, replacing the previous one.

        Args:
            component: Component name
            outcome: "skipped", "installed" or "failed"
            previous_version: Version found before the run ("none" if absent)
            new_version: Version installed (None unless installed)
            stage: Failing stage (None unless failed)
        """
        entry = LedgerEntry(
            component=component,
            outcome=outcome,
            previous_version=previous_version,
            new_version=new_version,
            stage=stage,
            recorded_at=datetime.now(UTC).isoformat(),
        )

        self._data[component] = entry
        self._save()

        logger.debug(f"Recorded {outcome} for {component}")
        return entry

    def get_entry(self, component: str) -> LedgerEntry | None:
        return self._data.get(component)

    def list_entries(self) -> list[LedgerEntry]:
        return list(self._data.values())
