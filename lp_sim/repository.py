"""
Position Repository
===================

Owns the id → SimulationPosition mapping and the per-position bag of
"last edited as text" form values. Positions are replaced wholesale on
every update (last write wins); the engine only ever sees the snapshot it
is handed.

Persisted layout (JSON):
    {
      "lp-simulations": [ <position record>, ... ],     newest first
      "lp-sim-values":  { "<id>": { "<field>": "<text>" }, ... }
    }
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from lp_sim.central_config import config
from lp_sim_math import SimulationPosition


class RepositoryError(Exception):
    """The persisted store could not be read."""


class PositionRepository:
    def __init__(self) -> None:
        self._positions: Dict[str, SimulationPosition] = {}
        self._order: List[str] = []
        self._texts: Dict[str, Dict[str, str]] = {}

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._positions

    def add(self, position: SimulationPosition) -> SimulationPosition:
        """Insert ``position`` at the front; an existing id is replaced in place."""
        if position.id not in self._positions:
            self._order.insert(0, position.id)
        self._positions[position.id] = position
        return position

    def get(self, position_id: str) -> Optional[SimulationPosition]:
        return self._positions.get(position_id)

    def update(self, position_id: str, **changes: Any) -> SimulationPosition:
        """Replace the stored model with a copy carrying ``changes``."""
        current = self._positions.get(position_id)
        if current is None:
            raise KeyError(position_id)
        changes.pop("id", None)
        updated = current.replace(**changes)
        self._positions[position_id] = updated
        return updated

    def put(self, position: SimulationPosition) -> SimulationPosition:
        """Store an already-built replacement for an existing id."""
        if position.id not in self._positions:
            raise KeyError(position.id)
        self._positions[position.id] = position
        return position

    def remove(self, position_id: str) -> bool:
        """Drop the position and its text cache. Returns False if unknown."""
        if position_id not in self._positions:
            return False
        del self._positions[position_id]
        self._order.remove(position_id)
        self._texts.pop(position_id, None)
        return True

    def list(self) -> List[SimulationPosition]:
        return [self._positions[pid] for pid in self._order]

    # ── Text cache ──

    def texts(self, position_id: str) -> Optional[Dict[str, str]]:
        cached = self._texts.get(position_id)
        return dict(cached) if cached is not None else None

    def set_texts(self, position_id: str, texts: Dict[str, str]) -> None:
        if position_id not in self._positions:
            raise KeyError(position_id)
        self._texts[position_id] = dict(texts)

    # ── Persistence ──

    def to_document(self) -> Dict[str, Any]:
        return {
            config.defaults.POSITIONS_KEY: [p.to_record() for p in self.list()],
            config.defaults.TEXTS_KEY: {
                pid: dict(values) for pid, values in self._texts.items()
            },
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "PositionRepository":
        repo = cls()
        records = document.get(config.defaults.POSITIONS_KEY, [])
        # Stored newest first; add() prepends, so insert oldest first
        for record in reversed(records):
            repo.add(SimulationPosition.from_record(record))
        for pid, values in document.get(config.defaults.TEXTS_KEY, {}).items():
            if pid in repo:
                repo._texts[pid] = {str(k): str(v) for k, v in values.items()}
        return repo

    def save(self, path: Path) -> Path:
        """Write the store atomically: sibling temp file, then rename over ``path``."""
        path = Path(path)
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self.to_document(), indent=2)
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        return path

    @classmethod
    def load(cls, path: Path) -> "PositionRepository":
        """Load a store file; a missing file is an empty repository."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RepositoryError(f"Cannot read store {path.name}") from exc
        if not isinstance(document, dict):
            raise RepositoryError(f"Unexpected store layout in {path.name}")
        try:
            return cls.from_document(document)
        except (AttributeError, TypeError, ValueError) as exc:
            raise RepositoryError(f"Malformed position record in {path.name}") from exc
