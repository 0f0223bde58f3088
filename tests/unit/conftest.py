"""Everything under tests/unit runs without network or nix and is marked ``unit``."""

import pytest


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
