import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import pytest  # noqa: E402

from bitespeed.identity.repository import InMemoryContactStore  # noqa: E402
from bitespeed.identity.services import IdentityReconciler  # noqa: E402


@pytest.fixture
def store() -> InMemoryContactStore:
    return InMemoryContactStore()


@pytest.fixture
def reconciler(store: InMemoryContactStore) -> IdentityReconciler:
    return IdentityReconciler(store)

