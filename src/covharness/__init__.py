import logging
from importlib.metadata import version

__version__ = version("covharness")

logger = logging.getLogger("covharness")

from covharness.engine.verifier import Verifier, create  # noqa: E402

__all__ = ["Verifier", "__version__", "create", "logger"]
