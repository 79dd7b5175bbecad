"""
Scenario Log — append-only, hash-chained history of applied commands.

Every applied mutating command produces one LogEntry. Entries are kept in
an arena indexed by sequence number (the first entry is sequence 0) and
a `current` pointer marks the end of the live history.

Behavioral Contract:
- Append-only. Sequence numbers strictly increase in command-issue order.
- Each entry is hashed and chained to the previous entry (tamper-evident).
- The live Entity Store is a fold over entries 0..current; replay() rebuilds
  the store at any sequence still held in the arena.
- rewind() only moves `current` back. Entries past it stay replayable until
  the next append overwrites them.
"""

import hashlib
import json
from datetime import datetime
from typing import List, Optional

from justact_kernel.entity_store.store import EMPTY_SEQUENCE, EntityStore
from justact_kernel.errors import InvariantViolation
from justact_kernel.models.commands import MutatingCommand
from justact_kernel.models.deltas import Delta
from justact_kernel.models.log import LogEntry


def _sign(entry: LogEntry) -> str:
    """SHA-256 over the entry with its own signature zeroed out."""
    entry_dict = entry.model_dump(mode="json")
    entry_dict["signature"] = ""
    entry_bytes = json.dumps(entry_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(entry_bytes).hexdigest()


class ScenarioLog:
    """
    In-memory arena of immutable log entries indexed by sequence number.
    """

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._current = EMPTY_SEQUENCE

    @property
    def current_sequence(self) -> int:
        """Sequence of the newest live entry (EMPTY_SEQUENCE when there is none)."""
        return self._current

    @property
    def last_sequence(self) -> int:
        """Sequence of the newest entry in the arena, live or rewound past."""
        return len(self._entries) - 1

    def append(
        self,
        command: MutatingCommand,
        delta: Delta,
        snapshot_id: str,
    ) -> LogEntry:
        """
        Append an entry for an already-applied delta after `current`.
        Entries a rewind left behind are overwritten. Computes the signature
        and chains it to the previous entry.
        """
        sequence = self._current + 1
        del self._entries[sequence:]
        entry = LogEntry(
            sequence=sequence,
            command=command,
            delta=delta,
            snapshot_id=snapshot_id,
            recorded_at=datetime.utcnow(),
            prior_entry_hash=self._entries[-1].signature if self._entries else None,
        )
        entry.signature = _sign(entry)
        self._entries.append(entry)
        self._current = sequence
        return entry

    def get(self, sequence: int) -> Optional[LogEntry]:
        """Get the entry recorded at a sequence number, if the arena holds it."""
        if 0 <= sequence < len(self._entries):
            return self._entries[sequence]
        return None

    def entries(self, from_sequence: int = 0, to_sequence: Optional[int] = None) -> List[LogEntry]:
        """Live entries with from_sequence <= sequence <= to_sequence, in order."""
        if to_sequence is None or to_sequence > self._current:
            to_sequence = self._current
        return self._entries[max(from_sequence, 0):to_sequence + 1]

    def replay(
        self,
        from_sequence: int = EMPTY_SEQUENCE,
        to_sequence: Optional[int] = None,
        base: Optional[EntityStore] = None,
    ) -> EntityStore:
        """
        Rebuild the Entity Store at `to_sequence` by re-applying deltas.

        Starts from `base` (which must sit at `from_sequence`) or from an
        empty store. `to_sequence` defaults to `current` and may reach
        entries a rewind left behind. Each re-derived snapshot is compared
        with the one originally recorded.
        """
        if to_sequence is None:
            to_sequence = self._current
        if not EMPTY_SEQUENCE <= from_sequence <= to_sequence <= self.last_sequence:
            raise ValueError(
                f"cannot replay from {from_sequence} to {to_sequence} "
                f"(log holds {EMPTY_SEQUENCE + 1}..{self.last_sequence})"
            )
        store = base if base is not None else EntityStore()
        if store.sequence != from_sequence:
            raise ValueError(
                f"base store is at sequence {store.sequence}, not {from_sequence}"
            )

        for entry in self._entries[from_sequence + 1:to_sequence + 1]:
            snapshot = store.apply(entry.delta, entry.sequence)
            if snapshot.snapshot_id != entry.snapshot_id:
                raise InvariantViolation(
                    "replay_determinism",
                    f"replaying sequence {entry.sequence} produced snapshot "
                    f"{snapshot.snapshot_id[:12]}, recorded {entry.snapshot_id[:12]}",
                )
        return store

    def rewind(self, sequence: int) -> int:
        """
        Make `sequence` the current entry; returns how many live entries
        were dropped from the history. Nothing is deleted from the arena.
        """
        if not EMPTY_SEQUENCE <= sequence <= self._current:
            raise ValueError(
                f"cannot rewind to {sequence} (current sequence is {self._current})"
            )
        dropped = self._current - sequence
        self._current = sequence
        return dropped

    def verify_chain_integrity(self) -> bool:
        """Verify no entries in the arena have been tampered with."""
        for i, entry in enumerate(self._entries):
            if entry.sequence != i:
                return False
            if entry.signature != _sign(entry):
                return False
            expected_prior = self._entries[i - 1].signature if i > 0 else None
            if entry.prior_entry_hash != expected_prior:
                return False
        return True

    def count(self) -> int:
        """Number of live entries."""
        return self._current + 1
