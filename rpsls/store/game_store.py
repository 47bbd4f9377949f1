"""
Game Store - The durable local record of every tracked game.

The store:
- Keeps games in memory, keyed by (case-insensitive) game id
- Writes the whole collection to a KeyValueBackend after each mutation
- Hands out snapshots, never live views

Persistence failures are NOT fatal. They are logged and remembered in
`last_error`; the in-memory state stays authoritative for the session
and the next successful write catches storage up. Unreadable records
are skipped on load, and the document they came from is kept under
`<storage_key>.corrupt`.

Mutations are synchronous, so under asyncio each one is atomic.
Serializing whole read-modify-act-write sequences per game (across
ledger calls) is the GameManager's job.
"""

from __future__ import annotations
import logging
from typing import Callable, Iterable

from ..engine_core.errors import GameNotFound, PersistenceFailure, ProtocolViolation
from ..engine_core.state import Game, GamePhase, Role, OUTCOME_FIELDS
from .backends import KeyValueBackend, MemoryBackend
from .records import GameRecord, StoreDocument, StoreEnvelope

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "rps_game_data"
CORRUPT_SUFFIX = ".corrupt"

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"


class GameStore:
    """
    Usage:
        store = GameStore(JsonFileBackend("~/.rpsls"))

        store.insert(game)
        store.update(game.game_id, lambda g: g._copy_with(last_action=now))
        active = store.active()
    """

    def __init__(
        self,
        backend: KeyValueBackend | None = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        autoload: bool = True,
    ):
        self.backend = backend if backend is not None else MemoryBackend()
        self.storage_key = storage_key
        self._games: dict[str, Game] = {}

        self.last_error: PersistenceFailure | None = None
        self.persistence_failures = 0

        if autoload:
            self.load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Replace in-memory games with the stored document.

        A missing document is an empty store. Records that fail to parse
        are skipped and reported, and the document as read is copied to
        `<storage_key>.corrupt` before anything overwrites it. Returns
        False if anything was skipped.
        """
        try:
            raw = self.backend.read(self.storage_key)
        except (OSError, ValueError) as e:
            self._report(f"Could not load games: {e}")
            self._games = {}
            return False
        if raw is None:
            self._games = {}
            return True

        try:
            items = StoreEnvelope.model_validate_json(raw).games
        except ValueError as e:
            self._report(f"Could not load games: {e}")
            self._preserve(raw)
            self._games = {}
            return False

        games: dict[str, Game] = {}
        rejected = 0
        for index, item in enumerate(items):
            try:
                game = GameRecord.model_validate(item).to_game()
            except (ValueError, TypeError) as e:
                rejected += 1
                self._report(f"Skipped unreadable game record #{index}: {e}")
                continue
            games[self._key(game.game_id)] = game

        self._games = games
        if rejected:
            self._preserve(raw)
        logger.debug("Loaded %d games from %s", len(self._games), self.storage_key)
        return not rejected

    def _preserve(self, raw: str):
        """Keep an unreadable document aside so a later save cannot destroy it."""
        backup_key = f"{self.storage_key}{CORRUPT_SUFFIX}"
        try:
            self.backend.write(backup_key, raw)
        except (OSError, ValueError) as e:
            self._report(f"Could not back up unreadable games to {backup_key}: {e}")
            return
        logger.warning("Copied unreadable game data to %s", backup_key)

    def save(self) -> bool:
        """Write all games. Returns False (and logs) on failure."""
        try:
            document = StoreDocument(games=[GameRecord.from_game(g) for g in self._games.values()])
            self.backend.write(self.storage_key, document.model_dump_json(indent=2))
        except (OSError, ValueError, TypeError) as e:
            self._report(f"Could not save games: {e}")
            return False
        self.last_error = None
        return True

    def _report(self, message: str):
        self.persistence_failures += 1
        self.last_error = PersistenceFailure(message, storage_key=self.storage_key)
        logger.warning("%s (key=%s)", message, self.storage_key)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def insert(self, game: Game) -> Game:
        key = self._key(game.game_id)
        if key in self._games:
            raise ValueError(f"Game {game.game_id} is already tracked")
        self._games[key] = game
        self.save()
        return game

    def update(self, game_id: str, mutator: Callable[[Game], Game]) -> Game:
        """
        Atomic read-modify-write of one game.

        The mutator returns the new record. Returning the same (or an
        equal) record is a no-op and does not touch storage.
        """
        key = self._key(game_id)
        current = self._games.get(key)
        if current is None:
            raise GameNotFound(game_id)

        updated = mutator(current)
        if updated is current or updated == current:
            return current
        self._check_write(current, updated)

        self._games[key] = updated
        self.save()
        return updated

    def rekey(self, old_id: str, game: Game) -> Game:
        """
        Replace a record stored under a provisional id.

        Keeps the record's position in the collection.
        """
        old_key = self._key(old_id)
        if old_key not in self._games:
            raise GameNotFound(old_id)
        new_key = self._key(game.game_id)
        if new_key != old_key and new_key in self._games:
            raise ValueError(f"Game {game.game_id} is already tracked")

        self._games = {
            (new_key if k == old_key else k): (game if k == old_key else g)
            for k, g in self._games.items()
        }
        self.save()
        return game

    def remove(self, game_id: str) -> Game | None:
        removed = self._games.pop(self._key(game_id), None)
        if removed is not None:
            self.save()
        return removed

    def clear(self):
        """Forget every game, in memory and in storage."""
        self._games = {}
        try:
            self.backend.delete(self.storage_key)
        except (OSError, ValueError) as e:
            self._report(f"Could not clear games: {e}")

    def _check_write(self, current: Game, updated: Game):
        if self._key(updated.game_id) != self._key(current.game_id):
            raise ValueError("update() cannot change a game's id; use rekey()")
        if updated.phase.rank < current.phase.rank:
            raise ProtocolViolation(
                "BACKWARD_TRANSITION",
                f"Cannot move {current.game_id} from {current.phase.value} back to {updated.phase.value}",
                game_id=current.game_id,
            )
        if current.is_terminal:
            changed = [f for f in OUTCOME_FIELDS if getattr(current, f) != getattr(updated, f)]
            if changed:
                raise ProtocolViolation(
                    "GAME_TERMINAL",
                    f"Game {current.game_id} is {current.phase.value}; cannot change {', '.join(changed)}",
                    game_id=current.game_id,
                )

    # -------------------------------------------------------------------------
    # Queries (snapshots)
    # -------------------------------------------------------------------------

    def get(self, game_id: str) -> Game | None:
        return self._games.get(self._key(game_id))

    def require(self, game_id: str) -> Game:
        game = self.get(game_id)
        if game is None:
            raise GameNotFound(game_id)
        return game

    def filter(self, predicate: Callable[[Game], bool] | None = None) -> list[Game]:
        """Matching games, as a list detached from later mutations."""
        games = list(self._games.values())
        if predicate is None:
            return games
        return [g for g in games if predicate(g)]

    def all(self) -> list[Game]:
        return self.filter()

    def active(self) -> list[Game]:
        return self.filter(lambda g: g.is_active)

    def completed(self) -> list[Game]:
        return self.filter(lambda g: g.is_terminal)

    def by_role(self, role: Role) -> list[Game]:
        return self.filter(lambda g: g.role == role)

    def in_phases(self, phases: Iterable[GamePhase]) -> list[Game]:
        wanted = set(phases)
        return self.filter(lambda g: g.phase in wanted)

    def select(self, role: Role | None = None, status: str | None = None) -> list[Game]:
        """
        Games matching a role and a status.

        `status` is "active", "completed", or a GamePhase value; an
        unknown one raises ValueError.
        """
        if not status:
            games = self.all()
        elif status == STATUS_ACTIVE:
            games = self.active()
        elif status == STATUS_COMPLETED:
            games = self.completed()
        else:
            games = self.in_phases([GamePhase(status)])
        if role is not None:
            games = [g for g in games if g.role == role]
        return games

    def used_salts(self) -> set[int]:
        return {g.salt for g in self._games.values() if g.salt is not None}

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, game_id: str) -> bool:
        return self._key(game_id) in self._games

    @staticmethod
    def _key(game_id: str) -> str:
        return game_id.lower()
