"""
Training Loop
=============

Drives one live game and trains the agent from it:
    1. Pick a move (pure lookahead at first, then DQN blended with lookahead)
    2. Apply it to the session and compute the shaped reward
    3. Store the transition and run one training step
    4. Report the board, auto-save, and schedule the next move

Each TrainingLoop is an actor: it owns its session and agent exclusively,
receives Commands through an inbox and reports Events to its caller. Loops
share no mutable state, so several can run side by side.

Threading:
    - start() runs the actor on a dedicated thread
    - A single deadline serves as the move timer; re-arming replaces it
    - Model save/load run on a one-worker executor. Their results go to a
      private queue and wake the inbox, so the networks are only touched by
      the loop thread and callers cannot forge a completion
    - handle(), step() and process_pending() run synchronously when the
      thread is not started (embedding, tests)

Example:
    >>> loop = TrainingLoop(Config(), on_message=print)
    >>> loop.start()
    >>> loop.send(Init())
    >>> loop.send(StartGame(speed_mode=True))
"""

import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from .agent import Agent, DivergentLossError
from .encoding import encode_board_flat
from .lookahead import LookaheadSearch, select_lookahead_action
from .messages import (
    Init, StartGame, ResetGame, StopGame, SetSpeedMode, SetRewardWeights,
    SaveModel, LoadModel, Ready, Display, GameOver, TrainResult, SaveDone,
    LoadDone, Error, Event,
)
from .model_store import FileModelStore, ModelNotFoundError, ModelStore, Weights
from .replay_buffer import Experience
from ..game.board import BoardFullError, Direction
from ..game.session import GameSession
from ..utils.logger import get_logger, log_training_metrics, log_model_event

import sys
sys.path.append('../..')
from config import Config, GRID_SIZE

logger = get_logger(__name__)


class AgentNotInitializedError(RuntimeError):
    """Raised when a command needs the agent before Init was handled."""

    def __init__(self):
        super().__init__("Agent not initialized")


class UnknownMessageError(TypeError):
    """Raised for messages outside the Command union."""

    def __init__(self, message: object):
        super().__init__(f"Unknown message: {type(message).__name__}")


class LoopState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    GAME_OVER = 'game_over'


# Completions posted back by the I/O worker
@dataclass(frozen=True)
class _SaveFinished:
    key: str
    explicit: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class _ModelLoaded:
    key: str
    weights: Optional[Weights] = None
    error: Optional[str] = None


_SHUTDOWN = object()
_IO_READY = object()


def move_interval_ms(empty_cells: int, config: Optional[Config] = None) -> int:
    """
    Delay before the next move, growing as the board fills up.

    An exponential curve from MOVE_INTERVAL_MIN_MS with 14 free cells
    (a fresh board) to MOVE_INTERVAL_MAX_MS with 4 free cells:

        delay = min_ms * 100 ^ ((14 - free) / 10)
    """
    config = config or Config()
    max_free = GRID_SIZE * GRID_SIZE - 2
    free = max(0, min(max_free, empty_cells))
    delay = round(config.MOVE_INTERVAL_MIN_MS * 100 ** ((max_free - free) / 10))
    return max(config.MOVE_INTERVAL_MIN_MS, min(config.MOVE_INTERVAL_MAX_MS, delay))


@dataclass
class EpisodeStats:
    """Statistics for a single episode."""
    episode: int
    score: int
    steps: int
    max_tile: int
    total_reward: float
    epsilon: float
    avg_loss: float
    duration: float


class TrainingMetrics:
    """
    Tracks per-episode metrics over time.

    Metrics tracked:
        - Episode scores and highest tiles
        - Total rewards
        - Moves per episode
        - Loss and epsilon values
        - Episode durations
    """

    FIELDS = ('scores', 'max_tiles', 'rewards', 'steps', 'losses', 'epsilons', 'durations')

    def __init__(self, history_length: int = 1000):
        """
        Initialize metrics tracker.

        Args:
            history_length: Maximum history to store
        """
        self.history_length = history_length

        self.scores: List[int] = []
        self.max_tiles: List[int] = []
        self.rewards: List[float] = []
        self.steps: List[int] = []
        self.losses: List[float] = []
        self.epsilons: List[float] = []
        self.durations: List[float] = []

    def add(self, stats: EpisodeStats) -> None:
        """Add episode statistics."""
        self.scores.append(stats.score)
        self.max_tiles.append(stats.max_tile)
        self.rewards.append(stats.total_reward)
        self.steps.append(stats.steps)
        self.losses.append(stats.avg_loss)
        self.epsilons.append(stats.epsilon)
        self.durations.append(stats.duration)

        if len(self.scores) > self.history_length:
            for attr in self.FIELDS:
                setattr(self, attr, getattr(self, attr)[-self.history_length:])

    def __len__(self) -> int:
        return len(self.scores)

    def get_recent_average(self, metric: str, n: int = 100) -> float:
        """Get average of last n values for a metric."""
        values = getattr(self, metric, [])
        if not values:
            return 0.0
        return float(np.mean(values[-n:]))

    def get_best_score(self) -> int:
        return max(self.scores) if self.scores else 0

    def get_best_tile(self) -> int:
        return max(self.max_tiles) if self.max_tiles else 0


class TrainingLoop:
    """
    Actor owning one game session and one agent.

    States:
        IDLE      - no game, nothing scheduled
        RUNNING   - moves are scheduled
        GAME_OVER - the episode ended; ResetGame starts the next one

    Events are passed to ``on_message`` when given, otherwise queued on
    ``outbox``. Either way they are emitted from the thread running the loop.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[ModelStore] = None,
        on_message: Optional[Callable[[Event], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        seed: Optional[int] = None,
        game_id: int = 0,
    ):
        """
        Args:
            config: Base configuration (Init may override DQN fields)
            store: Model store for save/load (FileModelStore under MODEL_DIR if None)
            on_message: Callback receiving every Event
            clock: Monotonic clock in seconds, injectable for tests
            seed: Seed for tile spawns, exploration and replay sampling
            game_id: Index of this loop among parallel loops (for logging)
        """
        self.base_config = config or Config()
        self.config = self.base_config
        self.store = store or FileModelStore(self.base_config.MODEL_DIR)
        self.on_message = on_message
        self.outbox: "queue.Queue[Event]" = queue.Queue()
        self.game_id = game_id

        self._clock = clock
        self._seed = seed
        self._inbox: queue.Queue = queue.Queue()

        self.state = LoopState.IDLE
        self.agent: Optional[Agent] = None
        self.session = GameSession(self.config, seed=seed)
        self.search = LookaheadSearch.from_config(self.config, self.session.weights)
        self.metrics = TrainingMetrics(self.config.PLOT_HISTORY_LENGTH)

        # Moves that changed the board, across all episodes
        self.total_steps = 0

        self._deadline: Optional[float] = None
        self._last_display: Optional[float] = None

        self._episode_reward = 0.0
        self._episode_losses: List[float] = []
        self._episode_start = time.time()

        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f'tilebot-io-{game_id}')
        self._pending_io: List[Future] = []
        self._io_results: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None

        self._handlers: Dict[type, Callable] = {
            Init: self._on_init,
            StartGame: self._on_start,
            ResetGame: self._on_start,
            StopGame: self._on_stop,
            SetSpeedMode: self._on_set_speed_mode,
            SetRewardWeights: self._on_set_reward_weights,
            SaveModel: self._on_save,
            LoadModel: self._on_load,
        }
        self._io_handlers: Dict[type, Callable] = {
            _SaveFinished: self._on_save_finished,
            _ModelLoaded: self._on_model_loaded,
        }

    # ------------------------------------------------------------------
    # Thread lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run the loop on a dedicated thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=f'tilebot-loop-{self.game_id}', daemon=True)
        self._thread.start()

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the thread, finish pending model I/O, and release the executor."""
        if self._thread is not None:
            self._inbox.put(_SHUTDOWN)
            self._thread.join(timeout)
            self._thread = None
        self._io.shutdown(wait=True)

    def __enter__(self) -> 'TrainingLoop':
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def send(self, message: object) -> None:
        """Post a command to the loop. Safe from any thread."""
        self._inbox.put(message)

    def _run(self) -> None:
        while True:
            if self._deadline is not None and self._clock() >= self._deadline:
                self.step()

            timeout = None
            if self._deadline is not None:
                timeout = max(0.0, self._deadline - self._clock())
            try:
                message = self._inbox.get(timeout=timeout)
            except queue.Empty:
                continue
            if message is _SHUTDOWN:
                break
            if message is _IO_READY:
                self._handle_io_results()
                continue
            self.handle(message)

    # ------------------------------------------------------------------
    # Synchronous driving (no thread)
    # ------------------------------------------------------------------

    def process_pending(self) -> int:
        """Handle every queued message now. Returns how many were handled."""
        handled = 0
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            if message is _SHUTDOWN:
                continue
            if message is _IO_READY:
                handled += self._handle_io_results()
                continue
            self.handle(message)
            handled += 1

    def wait_for_io(self, timeout: Optional[float] = None) -> None:
        """Block until pending saves and loads finish, then handle their results."""
        wait(list(self._pending_io), timeout=timeout)
        self._pending_io = [f for f in self._pending_io if not f.done()]
        if self._thread is None:
            self.process_pending()

    def run_until_game_over(self, max_steps: int = 100_000) -> int:
        """
        Step synchronously, ignoring move delays, until the episode ends.

        Returns:
            Number of step() calls made
        """
        calls = 0
        while self.state is LoopState.RUNNING and calls < max_steps:
            self.step()
            calls += 1
        return calls

    def drain_events(self) -> List[Event]:
        """Remove and return every queued Event."""
        events = []
        while True:
            try:
                events.append(self.outbox.get_nowait())
            except queue.Empty:
                return events

    @property
    def deadline(self) -> Optional[float]:
        """Clock time of the next scheduled move, None when nothing is armed."""
        return self._deadline

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _emit(self, event: Event) -> None:
        if self.on_message is not None:
            self.on_message(event)
        else:
            self.outbox.put(event)

    def handle(self, message: object) -> None:
        """Dispatch one message. Protocol errors are reported, never raised."""
        handler = self._handlers.get(type(message))
        try:
            if handler is None:
                raise UnknownMessageError(message)
            handler(message)
        except (AgentNotInitializedError, UnknownMessageError) as e:
            logger.warning(str(e))
            self._emit(Error(str(e)))

    def _post_io_result(self, result: object) -> None:
        """Called from the I/O worker."""
        self._io_results.put(result)
        self._inbox.put(_IO_READY)

    def _handle_io_results(self) -> int:
        """Apply every finished save and load. Returns how many were applied."""
        handled = 0
        while True:
            try:
                result = self._io_results.get_nowait()
            except queue.Empty:
                return handled
            try:
                self._io_handlers[type(result)](result)
            except AgentNotInitializedError as e:
                logger.warning(str(e))
                self._emit(Error(str(e)))
            handled += 1

    def _require_agent(self) -> Agent:
        if self.agent is None:
            raise AgentNotInitializedError()
        return self.agent

    def _on_init(self, msg: Init) -> None:
        self.config = self.base_config.with_dqn(msg.config)
        self.agent = Agent(config=self.config, seed=self._seed)
        logger.info(f"Agent ready on {self.agent.backend} "
                    f"(params={self.agent.policy_net.count_parameters():,}, "
                    f"memory={self.config.MEMORY_SIZE}, batch={self.config.BATCH_SIZE})")
        self._emit(Ready(self.agent.backend))

    def _apply_settings(self, speed_mode: Optional[bool], weights) -> None:
        if speed_mode is not None:
            self.session.speed_mode = speed_mode
        if weights is not None:
            self.session.weights = weights
            self.search.weights = weights

    def _on_start(self, msg) -> None:
        self._require_agent()
        self._apply_settings(msg.speed_mode, msg.reward_weights)
        self.session.reset()
        self.state = LoopState.RUNNING
        self._episode_reward = 0.0
        self._episode_losses = []
        self._episode_start = time.time()
        self._last_display = None
        self._report(force=True)
        self._schedule()

    def _on_stop(self, msg: StopGame) -> None:
        if self.state is not LoopState.IDLE:
            logger.info(f"Loop stopped (score={self.session.score})")
        self.state = LoopState.IDLE
        self._deadline = None

    def _on_set_speed_mode(self, msg: SetSpeedMode) -> None:
        self.session.speed_mode = msg.speed_mode
        # Re-arm so the pending move picks up the new delay
        if self.state is LoopState.RUNNING:
            self._schedule()

    def _on_set_reward_weights(self, msg: SetRewardWeights) -> None:
        self._apply_settings(None, msg.weights)

    # ------------------------------------------------------------------
    # Model I/O
    # ------------------------------------------------------------------

    def _track_io(self, future: Future) -> None:
        # Only in-flight jobs are kept
        self._pending_io = [f for f in self._pending_io if not f.done()]
        self._pending_io.append(future)

    def _submit_save(self, key: str, explicit: bool) -> None:
        agent = self._require_agent()
        weights = agent.policy_weights()
        metadata = agent.save_metadata()
        metadata['total_steps'] = self.total_steps

        def job():
            try:
                self.store.save(key, weights, metadata)
            except Exception as e:
                # Every failure is reported back to the loop thread
                self._post_io_result(_SaveFinished(key, explicit, error=f"{type(e).__name__}: {e}"))
            else:
                self._post_io_result(_SaveFinished(key, explicit))

        self._track_io(self._io.submit(job))

    def _on_save(self, msg: SaveModel) -> None:
        self._submit_save(msg.key or self.config.MODEL_KEY, explicit=True)

    def _on_save_finished(self, msg: _SaveFinished) -> None:
        if msg.error is not None:
            logger.error(f"Failed to save model '{msg.key}': {msg.error}")
            if msg.explicit:
                self._emit(Error(f"Save failed: {msg.error}"))
            return
        agent = self._require_agent()
        log_model_event('save' if msg.explicit else 'autosave', msg.key,
                        steps=self.total_steps, epsilon=f"{agent.epsilon:.4f}")
        if msg.explicit:
            self._emit(SaveDone(msg.key))

    def _on_load(self, msg: LoadModel) -> None:
        self._require_agent()
        key = msg.key or self.config.MODEL_KEY

        def job():
            try:
                weights = self.store.load(key)
            except ModelNotFoundError:
                self._post_io_result(_ModelLoaded(key))
            except Exception as e:
                self._post_io_result(_ModelLoaded(key, error=f"{type(e).__name__}: {e}"))
            else:
                self._post_io_result(_ModelLoaded(key, weights=weights))

        self._track_io(self._io.submit(job))

    def _on_model_loaded(self, msg: _ModelLoaded) -> None:
        agent = self._require_agent()
        if msg.error is not None:
            logger.error(f"Failed to load model '{msg.key}': {msg.error}")
            self._emit(Error(f"Load failed: {msg.error}"))
            return
        if msg.weights is None:
            logger.warning(f"No saved model under '{msg.key}', continuing with an untrained network")
            self._emit(LoadDone(msg.key, found=False))
            return
        try:
            agent.apply_weights(msg.weights)
        except RuntimeError as e:
            # Architecture mismatch
            logger.error(f"Cannot apply model '{msg.key}': {e}")
            self._emit(Error(f"Load failed: {e}"))
            return
        log_model_event('load', msg.key)
        self._emit(LoadDone(msg.key, found=True))

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        """Arm the move timer, replacing any pending deadline."""
        if self.session.speed_mode:
            delay_ms = 0
        else:
            delay_ms = move_interval_ms(self.session.empty_count, self.config)
        self._deadline = self._clock() + delay_ms / 1000.0

    def _select_action(self, state: np.ndarray, scores: List[float]) -> int:
        if self.total_steps < self.config.DEMO_PHASE_STEPS:
            return select_lookahead_action(scores)
        return self._require_agent().select_action_blended(
            state, scores, self.config.LOOKAHEAD_WEIGHT
        )

    def _train(self) -> Optional[float]:
        try:
            return self._require_agent().train_step()
        except (DivergentLossError, RuntimeError) as e:
            logger.error(f"Training step failed: {e}")
            return None

    def step(self) -> None:
        """Play one move. Does nothing unless the loop is RUNNING."""
        if self.state is not LoopState.RUNNING or self.agent is None:
            return
        self._deadline = None
        session = self.session

        prev_tiles = session.active
        state = encode_board_flat(prev_tiles)
        scores = self.search.scores(prev_tiles)
        action = self._select_action(state, scores)

        try:
            result = session.apply(Direction(action))
        except BoardFullError as e:
            logger.error(f"Aborting step: {e}")
            self._emit(Error(f"Internal error: {e}"))
            self._on_stop(StopGame())
            return

        if not result.moved:
            self._schedule()
            return

        self.total_steps += 1
        self._episode_reward += result.reward

        next_state = encode_board_flat(result.tiles)
        self.agent.remember(Experience(state, action, result.reward, next_state, result.done))
        loss = self._train()
        if loss is not None:
            self._episode_losses.append(loss)
        self._emit(TrainResult(loss))

        autosave = self.config.AUTOSAVE_EVERY
        if autosave > 0 and self.total_steps % autosave == 0:
            self._submit_save(self.config.MODEL_KEY, explicit=False)

        self._report(force=result.done)

        if result.done:
            self.state = LoopState.GAME_OVER
            self._finish_episode()
            self._emit(GameOver(result.score))
        else:
            self._schedule()

    def _report(self, force: bool = False) -> None:
        """Emit Display, throttled in speed mode unless forced."""
        now = self._clock()
        if self.session.speed_mode and not force and self._last_display is not None:
            elapsed_ms = (now - self._last_display) * 1000.0
            if elapsed_ms < self.config.SPEED_MODE_DISPLAY_INTERVAL_MS:
                return
        self._last_display = now
        session = self.session
        self._emit(Display(tuple(session.tiles), session.score, session.game_over))

    def _finish_episode(self) -> None:
        session = self.session
        avg_loss = float(np.mean(self._episode_losses)) if self._episode_losses else 0.0
        stats = EpisodeStats(
            episode=session.episodes,
            score=session.score,
            steps=session.moves,
            max_tile=session.max_tile,
            total_reward=self._episode_reward,
            epsilon=self.agent.epsilon,
            avg_loss=avg_loss,
            duration=time.time() - self._episode_start,
        )
        self.metrics.add(stats)
        log_training_metrics(
            episode=stats.episode,
            score=stats.score,
            epsilon=stats.epsilon,
            loss=avg_loss if self._episode_losses else None,
            max_tile=stats.max_tile,
            steps=stats.steps,
            game_id=self.game_id,
        )
