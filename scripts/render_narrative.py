#!/usr/bin/env python
"""
Renders a narrative template against a JSON data file.

Usage:
    python scripts/render_narrative.py TEMPLATE DATA.json [--includes DIR] [--env KEY=VALUE ...]
"""

import argparse
import json
import logging
import os
import sys
import pathlib
from typing import Dict, List, Optional

# --- Path Setup ---
SCRIPT_DIR = pathlib.Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from narrative.engine import NarrativeEngine
from narrative.system.errors import TemplateEvaluationError, TemplateSyntaxError
from narrative.system.models import EngineSettings
from narrative.template_evaluator.include_resolvers import DirectoryIncludeResolver

logger = logging.getLogger(__name__)


def setup_logging(log_level_str: str):
    """Configures logging on stderr so rendered output on stdout stays clean."""
    log_level = getattr(logging, log_level_str.upper(), logging.WARNING)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    logger.info(f"Logging configured to level: {log_level_str.upper()}")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a narrative template against a JSON data item.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("template", help="Path to the template file.")
    parser.add_argument("data", help="Path to a JSON file holding the data item.")
    parser.add_argument("--includes", help="Directory holding include templates (defaults to the template's directory).")
    parser.add_argument("--env", action="append", help="Environment setting readable as %%KEY, given as KEY=VALUE. Repeatable.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level.")
    return parser.parse_args(argv)


def parse_env_pairs(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turns ['KEY=VALUE', ...] into a dict."""
    environment = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --env value '{pair}', expected KEY=VALUE")
        environment[key] = value
    return environment


def run(args: argparse.Namespace) -> int:
    logger.info(f"Rendering {args.template} with data {args.data}")
    try:
        settings = EngineSettings.from_env()
        settings.environment.update(parse_env_pairs(args.env))

        resolver = None
        include_dir = args.includes or os.path.dirname(os.path.abspath(args.template))
        if os.path.isdir(include_dir):
            resolver = DirectoryIncludeResolver(include_dir, extension=settings.include_extension)

        engine = NarrativeEngine(include_resolver=resolver, settings=settings)

        with open(args.template, "r", encoding="utf-8") as f:
            source = f.read()
        with open(args.data, "r", encoding="utf-8") as f:
            item = json.load(f)

        document = engine.parse(source, os.path.basename(args.template))
        output = engine.evaluate(document, item)
    except (TemplateSyntaxError, TemplateEvaluationError, ValueError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(output)
    return 0


# --- Script Execution ---
if __name__ == "__main__":
    cli_args = parse_arguments()
    setup_logging(cli_args.log_level)
    sys.exit(run(cli_args))
