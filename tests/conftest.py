"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import logging
import sys
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

# Insert local src directory at the beginning of sys.path
# This ensures that the local crowdcode package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of crowdcode modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("crowdcode"):
        del sys.modules[module_name]


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Reset logging state between tests.

    configure_logging() installs a level filter that would otherwise hide
    debug and info events from capture_logs in later tests.
    """
    from crowdcode.core.logging import clear_session_id

    structlog.reset_defaults()
    clear_session_id()
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    clear_session_id()
