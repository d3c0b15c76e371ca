import matplotlib

matplotlib.use("Agg")

import pytest

from floorheat.fem import solve
from floorheat.model import SolveRequest


@pytest.fixture
def reference_request() -> SolveRequest:
    """Tile on 50 mm semi-dry screed over EPS 100, 45/40 °C, three spiral runs at 150 mm."""
    return SolveRequest()


@pytest.fixture(scope="session")
def reference_result():
    return solve(SolveRequest())


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
