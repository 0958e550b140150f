from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List, Sequence


def load_run_config(path: Path) -> Dict[str, object]:
    if not path.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid run config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Run config must be a JSON object")
    return payload


def collect_cli_dests(parser: argparse.ArgumentParser, argv: Sequence[str]) -> set[str]:
    """
    Dests of the options that were spelled out on the command line.
    """

    dests: set[str] = set()
    for opt, action in parser._option_string_actions.items():
        for arg in argv:
            if arg == opt or arg.startswith(f"{opt}="):
                dests.add(action.dest)
                break
    return dests


def _coerce_int_list(value: object, key: str) -> List[int]:
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer or list of integers")
    if isinstance(value, int):
        return [value]
    if isinstance(value, list) and all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        return list(value)
    raise ValueError(f"{key} must be an integer or list of integers")


def _coerce(action: argparse.Action, key: str, value: object) -> object:
    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction)):
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be a boolean")
        return value
    if isinstance(action, argparse._AppendAction):
        return _coerce_int_list(value, key)
    if action.type is int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be an integer")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{key} must be an integer")
        return int(value)
    if action.type is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number")
        return float(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    if action.choices is not None and value not in action.choices:
        raise ValueError(f"{key} must be one of {sorted(action.choices)}")
    return value


def apply_run_config(
    *,
    args: argparse.Namespace,
    payload: Dict[str, object],
    cli_dests: set[str],
    parser: argparse.ArgumentParser,
) -> None:
    """
    Fill `args` from a run config payload. Flags given on the command line win;
    keys are parser dests (`prob_threshold`, not `--conf`).
    """

    # Positionals (input paths) always come from the command line.
    actions = {action.dest: action for action in parser._actions if action.option_strings and action.dest != "help"}
    if "config" in payload:
        raise ValueError("run config must not include the 'config' key")
    unknown = sorted(k for k in payload.keys() if k not in actions)
    if unknown:
        raise ValueError(f"Unknown run config keys: {unknown}")

    for key, value in payload.items():
        if key in cli_dests or value is None:
            continue
        setattr(args, key, _coerce(actions[key], key, value))
