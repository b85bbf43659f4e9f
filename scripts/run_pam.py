#!/usr/bin/env python3
"""
Execute a PAM graph against an evaluation context and print the result.

Usage:
    python3 scripts/run_pam.py --graph <path> --context <path> [options]

Examples:
    # Default engine settings (pam_config/defaults.yaml)
    python3 scripts/run_pam.py --graph graph.json --context inputs.yaml

    # Custom settings, debug logging to stderr
    python3 scripts/run_pam.py --graph graph.yaml --context inputs.json \\
        --settings settings.yaml --log-level DEBUG

    # Also print the inputs hash
    python3 scripts/run_pam.py --graph graph.json --context inputs.json --hash

Exit codes: 0 on success, 1 on bad input or failed execution.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Execute a PAM graph and print the result as JSON.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--graph",
        type=Path,
        required=True,
        help="Graph definition file (.json, .yaml or .yml)",
    )
    parser.add_argument(
        "--context",
        type=Path,
        required=True,
        help="Evaluation context file (.json, .yaml or .yml)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Engine settings YAML (default: pam_config/defaults.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Structured log level on stderr (default: WARNING)",
    )
    parser.add_argument(
        "--hash",
        action="store_true",
        help="Include the execution inputs hash in the output",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    import yaml

    from pam_config import get_engine_settings, load_context, load_graph_definition
    from pam_engines.pam import execute_graph, hash_execution_inputs, parse
    from pam_kernel.exceptions import PamError
    from pam_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level))

    try:
        settings = get_engine_settings(args.settings)
        graph = parse(load_graph_definition(args.graph))
        context = load_context(args.context)
    except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except PamError as e:
        print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
        return 1

    try:
        result = execute_graph(
            graph,
            context,
            policy=settings.to_policy(),
            fx_rates=settings.fx_rate_service(),
            units=settings.unit_converter(),
        )
    except PamError as e:
        print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
        return 1

    output = result.to_dict()
    if args.hash:
        output["inputs_hash"] = hash_execution_inputs(graph, context)
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
