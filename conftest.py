"""Root conftest.py for the benchlab monorepo.

This provides shared pytest configuration across all packages.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from _pytest.config import Config


# Add all package src directories to path for imports
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in PROJECT_ROOT.glob("benchlab-*/src"):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))


def pytest_configure(config: Config) -> None:
    """Register custom markers.

    Args:
        config: pytest configuration object.
    """
    config.addinivalue_line(
        "markers",
        "emulator: Test talks to an emulator over a local TCP socket",
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration test requiring real hardware",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running test",
    )


def pytest_report_header(config: Config) -> list[str]:
    """Add a header line to the pytest report.

    Args:
        config: pytest configuration object.

    Returns:
        List of header lines.
    """
    return ["benchlab monorepo test suite"]
