"""
One-time logging setup.

The verbosity comes from a filter string read from the environment
(CUISERVE_LOG by default), e.g. ``info`` or ``warn,cuiserve.access=info``.
"""

import logging
import os
from typing import Dict, Tuple

LOG_FORMAT = "[%(asctime)s %(levelname)s %(name)s] %(message)s"
OFF = logging.CRITICAL + 10

LEVELS = {
    "off": OFF,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

logger = logging.getLogger(__name__)

_initialized = False


def parse_log_filter(spec: str, default: int = logging.INFO) -> Tuple[int, Dict[str, int], list]:
    """
    Parse a comma-separated filter.

    Returns (root_level, per_logger_levels, rejected_directives).
    A bare level sets the root; ``name=level`` targets one logger.
    """
    root_level = default
    per_logger: Dict[str, int] = {}
    rejected = []

    for directive in spec.split(","):
        directive = directive.strip()
        if not directive:
            continue
        if "=" in directive:
            name, _, level_name = directive.partition("=")
            level = LEVELS.get(level_name.strip().lower())
            if not name.strip() or level is None:
                rejected.append(directive)
                continue
            per_logger[name.strip()] = level
        else:
            level = LEVELS.get(directive.lower())
            if level is None:
                rejected.append(directive)
                continue
            root_level = level

    return root_level, per_logger, rejected


def init_logging(env_var: str = "CUISERVE_LOG", default_filter: str = "info", force: bool = False) -> None:
    """Configure the root logger once from the environment filter."""
    global _initialized
    if _initialized and not force:
        return

    spec = os.environ.get(env_var, "").strip() or default_filter
    root_level, per_logger, rejected = parse_log_filter(spec, default=LEVELS.get(default_filter, logging.INFO))

    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(root_level)
    for name, level in per_logger.items():
        logging.getLogger(name).setLevel(level)

    for directive in rejected:
        logger.warning("ignoring invalid %s directive: %r", env_var, directive)

    _initialized = True
