"""
Centralized logging configuration.
"""

import logging
import sys
from typing import Optional

from agent_recall.config import AgentConfig


def setup_logging(config: Optional[AgentConfig] = None) -> None:
    """
    Configure the root logger for the process.

    Args:
        config: AgentConfig instance, uses defaults if None
    """
    config = config or AgentConfig()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def get_logger(name: str, config: Optional[AgentConfig] = None) -> logging.Logger:
    """Get a logger under the agent_recall hierarchy."""
    if not name.startswith("agent_recall"):
        name = f"agent_recall.{name}"
    logger = logging.getLogger(name)
    if config is not None:
        logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    return logger
