from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from pydantic import ValidationError
from yaml import YAMLError

from .log import get_logger, set_level
from .config import AppConfig, load_yaml, validate_config, validate_output
from .emit import emit

"""
CLI entrypoint

Usage:
  chunkstream --config recipe.yaml [-o OUTPUT ...] [-v]

Behavior:
  - Loads & validates the recipe
  - Writes it to every output (recipe outputs, or the -o overrides)
  - All diagnostics/logs go to STDERR
"""

_LOG = get_logger(__name__)
_DEFAULT_CONFIG = "chunkstream.yaml"


# This function parses an --output value, reporting bad ones as usage errors.
def _output_arg(value: str) -> str:
    try:
        return validate_output(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


# This function builds the parser for the CLI.
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chunkstream", description="Compose text, files, commands and URLs into byte outputs"
    )
    p.add_argument(
        "-c",
        "--config",
        default=_DEFAULT_CONFIG,
        help=f"Path to YAML recipe (default: {_DEFAULT_CONFIG})",
    )
    p.add_argument(
        "-o",
        "--output",
        action="append",
        type=_output_arg,
        dest="outputs",
        help="Output to write to, replacing the recipe outputs (repeatable)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    return p


# This function is the main function for the CLI.
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_level(logging.DEBUG)

    config_path: str = args.config

    # Load and validate config
    try:
        raw = load_yaml(config_path)
        cfg: AppConfig = validate_config(raw)
    except FileNotFoundError:
        _LOG.error("Config file not found: %s", config_path)
        return 1
    except YAMLError as e:
        _LOG.error("Failed to parse YAML config (%s): %s", config_path, e)
        return 1
    except ValidationError as e:
        _LOG.error("Config validation error: %s", e)
        return 1
    except Exception as e:
        _LOG.exception("Unexpected error loading config: %s", e)
        return 1

    # Run
    outputs = args.outputs or cfg.outputs
    try:
        written = emit(cfg, outputs)
    except KeyboardInterrupt:
        _LOG.info("Interrupted, exiting.")
        return 130
    except Exception as e:
        _LOG.exception("Unexpected runtime error: %s", e)
        return 1

    failed = [out for out, n in zip(outputs, written) if n is None]
    if failed:
        _LOG.error("%d of %d outputs failed: %s", len(failed), len(outputs), ", ".join(failed))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
