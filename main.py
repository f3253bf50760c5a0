#!/usr/bin/env python3
"""
2048 Learning Agent - Main Entry Point
======================================

Runs one or more training loops headlessly. Each loop plays 2048 on its own
thread, starting with pure lookahead play and gradually handing decisions to
the DQN as it trains.

Usage:
    # Train one game until Ctrl+C
    python main.py

    # Four games in parallel, 50 episodes each, no move delays
    python main.py --games 4 --episodes 50 --speed

    # Resume from a saved model with a shallower search
    python main.py --load 2048-dqn-policy --depth 4

    # List saved models
    python main.py --list-models

Press Ctrl+C to stop; models are saved before exit.
"""

import argparse
import random
import sys
import threading
import time
from typing import List, Optional

import numpy as np
import torch

from config import Config
from tilebot.ai.messages import (
    Init, StartGame, ResetGame, StopGame, SaveModel, LoadModel,
    GameOver, SaveDone, LoadDone, Error, Ready,
)
from tilebot.ai.model_store import FileModelStore
from tilebot.ai.trainer import TrainingLoop
from tilebot.utils.logger import LogLevel, get_logger, setup_logging

logger = get_logger('main')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="2048 Learning Agent - lookahead search blended with a DQN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES
========
    python main.py --games 4 --speed           Four fast games in parallel
    python main.py --episodes 100              Stop after 100 episodes
    python main.py --load 2048-dqn-policy      Resume from a saved model
    python main.py --list-models               Show saved models
        """
    )

    parser.add_argument(
        '--list-models', action='store_true',
        help='List saved models and exit'
    )
    parser.add_argument(
        '--games', type=int, default=1,
        help='Number of games trained in parallel (default: 1)'
    )
    parser.add_argument(
        '--episodes', type=int, default=0,
        help='Episodes per game before stopping (default: 0 = until Ctrl+C)'
    )
    parser.add_argument(
        '--speed', action='store_true',
        help='Speed mode: no delay between moves, throttled display'
    )
    parser.add_argument(
        '--model-dir', type=str, default=None,
        help='Directory for saved models (default: config MODEL_DIR)'
    )
    parser.add_argument(
        '--load', type=str, default=None, metavar='KEY',
        help='Load the model stored under KEY before training'
    )
    parser.add_argument(
        '--depth', type=int, default=None,
        help='Lookahead depth (default: config LOOKAHEAD_DEPTH)'
    )
    parser.add_argument(
        '--cpu', action='store_true',
        help='Force CPU even when CUDA/MPS is available'
    )
    parser.add_argument(
        '--seed', type=int, default=None,
        help='Random seed for reproducibility'
    )
    parser.add_argument(
        '--log-level', type=str, default='INFO',
        choices=[level.name for level in LogLevel],
        help='Console log level (default: INFO)'
    )

    args = parser.parse_args(argv)
    if args.games < 1:
        parser.error("--games must be at least 1")
    if args.episodes < 0:
        parser.error("--episodes must be non-negative")
    if args.depth is not None and args.depth < 0:
        parser.error("--depth must be non-negative")
    return args


def build_config(args: argparse.Namespace) -> Config:
    """Apply command line overrides to the default configuration."""
    overrides = {}
    if args.cpu:
        overrides['FORCE_CPU'] = True
    if args.model_dir:
        overrides['MODEL_DIR'] = args.model_dir
    if args.depth is not None:
        overrides['LOOKAHEAD_DEPTH'] = args.depth
    if args.seed is not None:
        overrides['SEED'] = args.seed
    return Config(**overrides)


def set_seed(seed: int) -> None:
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


class GameRunner:
    """
    Drives one TrainingLoop from the main thread.

    Receives the loop's events, resets the game after each GAME_OVER until
    the episode budget is used, and signals when saves and loads complete.
    """

    def __init__(self, game_id: int, config: Config, args: argparse.Namespace):
        self.game_id = game_id
        self.episodes_target = args.episodes
        self.speed_mode = args.speed
        self.episodes_done = 0
        self.best_score = 0

        # One key per parallel game so saves never race on the same file
        self.model_key = config.MODEL_KEY if args.games == 1 else f"{config.MODEL_KEY}-{game_id}"

        self.ready = threading.Event()
        self.finished = threading.Event()
        self.io_done = threading.Event()
        self.started = False

        seed = None if config.SEED is None else config.SEED + game_id
        self.loop = TrainingLoop(
            config,
            store=FileModelStore(config.MODEL_DIR),
            on_message=self.on_message,
            seed=seed,
            game_id=game_id,
        )

    def on_message(self, event) -> None:
        """Runs on the loop thread."""
        if isinstance(event, Ready):
            self.ready.set()
        elif isinstance(event, GameOver):
            self.episodes_done += 1
            self.best_score = max(self.best_score, event.score)
            if self.episodes_target and self.episodes_done >= self.episodes_target:
                self.loop.send(StopGame())
                self.finished.set()
            else:
                self.loop.send(ResetGame())
        elif isinstance(event, (SaveDone, LoadDone)):
            if isinstance(event, LoadDone) and not event.found:
                logger.warning(f"[game {self.game_id}] model '{event.key}' not found, starting fresh")
            self.io_done.set()
        elif isinstance(event, Error):
            logger.error(f"[game {self.game_id}] {event.message}")
            self.io_done.set()

    def start(self, load_key: Optional[str]) -> None:
        self.loop.start()
        self.started = True
        self.loop.send(Init())
        self.ready.wait()
        if load_key:
            self.io_done.clear()
            self.loop.send(LoadModel(load_key))
            self.io_done.wait()
        self.loop.send(StartGame(speed_mode=self.speed_mode))

    def stop_and_save(self, timeout: float = 30.0) -> None:
        if not self.started:
            self.loop.shutdown()
            return
        self.io_done.clear()
        self.loop.send(StopGame())
        self.loop.send(SaveModel(self.model_key))
        if not self.io_done.wait(timeout):
            logger.error(f"[game {self.game_id}] timed out waiting for save")
        self.loop.shutdown()


def list_models(config: Config) -> None:
    """Print every model in the model directory."""
    store = FileModelStore(config.MODEL_DIR)
    keys = store.keys()
    if not keys:
        print(f"No models found in '{config.MODEL_DIR}'")
        return
    print(f"\nModels in '{config.MODEL_DIR}':")
    for key in keys:
        meta = store.metadata(key)
        print(f"  {key:<30} steps={meta.get('total_steps', '?'):<8} "
              f"eps={meta.get('epsilon', float('nan')):.4f}  saved={meta.get('timestamp', '?')}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = build_config(args)

    setup_logging(
        log_dir=config.LOG_DIR,
        level=LogLevel[args.log_level],
        force=True,
    )

    if args.list_models:
        list_models(config)
        return 0

    if config.SEED is not None:
        set_seed(config.SEED)

    logger.info(f"Starting {args.games} game(s) on {config.DEVICE} "
                f"(depth={config.LOOKAHEAD_DEPTH}, speed={args.speed})")

    runners = [GameRunner(i, config, args) for i in range(args.games)]
    start_time = time.time()

    try:
        for runner in runners:
            runner.start(args.load)
        while not all(r.finished.is_set() for r in runners):
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.warning("Training interrupted by user")
    finally:
        for runner in runners:
            runner.stop_and_save()

    elapsed = time.time() - start_time
    for runner in runners:
        metrics = runner.loop.metrics
        logger.info(
            f"[game {runner.game_id}] episodes={runner.episodes_done} "
            f"best_score={runner.best_score} best_tile={metrics.get_best_tile()} "
            f"avg_score={metrics.get_recent_average('scores'):.0f}"
        )
    logger.info(f"Done in {elapsed:.0f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
