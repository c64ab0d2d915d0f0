from __future__ import annotations

import json
import logging
from dataclasses import asdict
from dataclasses import dataclass, field
from pathlib import Path

from game import GameResult
from protocol import GamePhase

logger = logging.getLogger(__name__)


@dataclass
class Score:
    wins: int = 0
    losses: int = 0
    draws: int = 0


@dataclass
class ScoreBoard:
    _scores: dict[str, Score] = field(default_factory=dict)
    _path: Path | None = None

    @classmethod
    def load(cls, path: str | Path) -> "ScoreBoard":
        p = Path(path)
        if not p.exists():
            return cls(_path=p)
        data = json.loads(p.read_text(encoding="utf-8"))
        scores: dict[str, Score] = {}
        for identity, entry in data.get("scores", {}).items():
            if isinstance(entry, dict):
                scores[identity] = Score(
                    wins=int(entry.get("wins", 0)),
                    losses=int(entry.get("losses", 0)),
                    draws=int(entry.get("draws", 0)),
                )
        return cls(_scores=scores, _path=p)

    def save(self) -> None:
        if self._path is None:
            return
        payload = {"scores": self.as_dict()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

    def record_result(self, result: GameResult, initiator_id: str, responder_id: str) -> None:
        if result.phase is GamePhase.DRAW:
            self._score(initiator_id).draws += 1
            self._score(responder_id).draws += 1
        elif result.phase is GamePhase.WIN:
            loser = responder_id if result.winner == initiator_id else initiator_id
            self._score(result.winner).wins += 1
            self._score(loser).losses += 1
        else:
            raise ValueError(f"cannot record a game in phase {result.phase.value}")
        logger.debug("recorded %s for %s vs %s", result.phase.value, initiator_id, responder_id)
        self.save()

    def get(self, identity: str) -> Score:
        return self._scores.get(identity, Score())

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {identity: asdict(score) for identity, score in self._scores.items()}

    def format_table(self) -> str:
        if not self._scores:
            return "(no games yet)"

        lines: list[str] = []
        header = f"{'identity':60}  {'wins':>4}  {'losses':>6}  {'draws':>5}"
        lines.append(header)
        lines.append("-" * len(header))
        for identity in sorted(self._scores.keys()):
            s = self._scores[identity]
            lines.append(f"{identity:60}  {s.wins:>4}  {s.losses:>6}  {s.draws:>5}")
        return "\n".join(lines)

    def _score(self, identity: str) -> Score:
        return self._scores.setdefault(identity, Score())
