"""
Logging for the ucp_agent package.

Every module logs through a child of the "ucp_agent" logger:

    ucp_agent.agent          AgentLogEvent records, verbose step traces
    ucp_agent.ucp_client     discovery probes, transport fallback (DEBUG)
    ucp_agent.mcp_client     JSON-RPC calls and transport failures
    ucp_agent.acp_client     checkout-session requests
    ucp_agent.openai_adapter malformed tool-call arguments

The package logger writes to stdout at LOG_LEVEL (default INFO) and does not
propagate, so embedding applications see one copy of each record. Set
LOG_LEVEL=DEBUG to see the suppressed error behind an auto-transport fallback.
"""
import logging
import os
import sys

PACKAGE_LOGGER = "ucp_agent"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _configure_package_logger() -> logging.Logger:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(LOG_LEVEL)

    # one handler per process
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(LOG_LEVEL)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(handler)

    package_logger.propagate = False
    return package_logger


logger = _configure_package_logger()


def get_logger(name: str = None) -> logging.Logger:
    """Return the package logger, or its `ucp_agent.<name>` child."""
    if name:
        return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
    return logger
