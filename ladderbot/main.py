"""
Main entry point for ladderbot.

One invocation advances the DCA ladder by a single step and exits; an
external scheduler (cron, CI schedule, systemd timer) provides repetition.

Usage:
    ladderbot                          # same as `ladderbot run`
    ladderbot --config configs/example.yaml run
    ladderbot status
    ladderbot reset [--force]
    ladderbot init-config configs/my_bot.yaml

Exit status is 0 on success and 1 on any failure so the scheduler can
flag the run.
"""

import argparse
import asyncio
import json
import os
import sys
import uuid
from pathlib import Path

from pydantic import ValidationError

from ladderbot import __version__
from ladderbot.api.binance_client import BinanceClient
from ladderbot.api.exceptions import ExchangeAPIError
from ladderbot.config.manager import ConfigManager
from ladderbot.config.schemas import AppConfig, Credentials
from ladderbot.core.exceptions import ConfigurationError, LadderBotError
from ladderbot.core.models import RunState, RunStatus
from ladderbot.core.run_lock import RunLock
from ladderbot.core.state_store import StateStore
from ladderbot.strategies.dca.dca_engine import DCALadderEngine, StepResult
from ladderbot.utils.logger import get_logger, log_context, setup_logging

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class BotApplication:
    """Wires configuration, exchange client, state store and engine for one run."""

    def __init__(self, config: AppConfig, credentials: Credentials) -> None:
        self.config = config
        self.credentials = credentials
        self.store = StateStore(config.state_file)

    def create_client(self) -> BinanceClient:
        return BinanceClient(
            api_key=self.credentials.api_key.get_secret_value(),
            api_secret=self.credentials.api_secret.get_secret_value(),
            base_url=self.credentials.endpoint or self.config.exchange.base_url,
            request_timeout=self.config.exchange.request_timeout,
            recv_window=self.config.exchange.recv_window,
        )

    async def run(self) -> StepResult:
        """Advance the strategy one step under the run lock."""
        with RunLock.for_state_file(self.config.state_file):
            async with self.create_client() as client:
                engine = DCALadderEngine(self.config.strategy, client, self.store)
                return await engine.run_once()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ladderbot",
        description="DCA ladder bot: one strategy step per invocation",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to YAML config (default: $CONFIG_PATH or {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        default=None,
        help="Override the state file from the config (or $STATE_FILE)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Advance the strategy one step (default)")
    subparsers.add_parser("status", help="Print the persisted run state")

    reset = subparsers.add_parser("reset", help="Re-arm a stopped run to IDLE")
    reset.add_argument(
        "--force",
        action="store_true",
        help="Also reset an ACTIVE run (its open orders are no longer tracked)",
    )

    init = subparsers.add_parser("init-config", help="Write an example config file")
    init.add_argument("path", type=Path, help="Where to write the example config")
    return parser


def load_config(args: argparse.Namespace) -> tuple[AppConfig, str]:
    """
    Load the config file and apply environment / command line overrides.

    Returns:
        The validated config and the version hash of the file it came from
    """
    config_path = args.config or Path(os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH))
    manager = ConfigManager(config_path)
    config = manager.load()

    overrides: dict = {}
    if os.getenv("LOG_LEVEL"):
        overrides["log_level"] = os.environ["LOG_LEVEL"].upper()
    state_file = args.state_file or os.getenv("STATE_FILE")
    if state_file:
        overrides["state_file"] = Path(state_file)
    if overrides:
        try:
            config = AppConfig.model_validate({**config.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid override: {e}") from e

    return config, manager.get_config_version()


def configure_logging(config: AppConfig) -> None:
    setup_logging(
        log_level=config.log_level,
        log_dir=config.log_dir,
        log_to_console=config.log_to_console,
        log_to_file=config.log_to_file,
        json_logs=config.json_logs,
    )


def cmd_run(config: AppConfig, config_version: str) -> int:
    credentials = Credentials.from_env()
    app = BotApplication(config, credentials)

    with log_context(
        run_id=uuid.uuid4().hex[:12],
        symbol=config.strategy.symbol,
        config_version=config_version,
    ):
        logger.info("starting_invocation", state_file=str(config.state_file))
        result = asyncio.run(app.run())
        logger.info("invocation_finished", **result.to_dict())

    print(result.message)
    return 0


def cmd_status(config: AppConfig) -> int:
    state = StateStore(config.state_file).load()
    print(json.dumps(state.model_dump(mode="json"), indent=2))
    return 0


def cmd_reset(config: AppConfig, force: bool) -> int:
    store = StateStore(config.state_file)
    with RunLock.for_state_file(config.state_file):
        state = store.load()
        if state.status == RunStatus.ACTIVE and not force:
            logger.error(
                "reset_refused",
                reason="run is ACTIVE; cancel its orders on the exchange and use --force",
            )
            return 1

        fresh = RunState.idle()
        fresh.cycles_completed = state.cycles_completed
        store.save(fresh)
        logger.info("state_reset", previous_status=state.status.value)

    print(f"State reset to IDLE (was {state.status.value}).")
    return 0


def cmd_init_config(path: Path) -> int:
    if path.exists():
        print(f"ladderbot: refusing to overwrite existing file {path}", file=sys.stderr)
        return 1
    path.parent.mkdir(parents=True, exist_ok=True)
    ConfigManager.create_example_config(path)
    print(f"Example configuration created at: {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, dispatch the command and map failures to exit codes."""
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    # Runs before logging is configured; it only writes a file
    if command == "init-config":
        return cmd_init_config(args.path)

    try:
        config, config_version = load_config(args)
    except ConfigurationError as e:
        print(f"ladderbot: {e}", file=sys.stderr)
        return 1

    configure_logging(config)
    logger.info(
        "configuration_loaded",
        command=command,
        version_hash=config_version,
        symbol=config.strategy.symbol,
        state_file=str(config.state_file),
    )

    try:
        if command == "status":
            return cmd_status(config)
        if command == "reset":
            return cmd_reset(config, args.force)
        return cmd_run(config, config_version)

    except ExchangeAPIError as e:
        logger.error(
            "exchange_error",
            error=str(e),
            error_type=type(e).__name__,
            code=e.code,
        )
        return 1
    except LadderBotError as e:
        logger.error("run_failed", error=str(e), error_type=type(e).__name__)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
