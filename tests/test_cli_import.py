"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved_modules = {
            name: module
            for name, module in sys.modules.items()
            if name == "users_api" or name.startswith("users_api.")
        }

    def tearDown(self) -> None:
        self._clear_package_modules()
        sys.modules.update(self._saved_modules)

    @staticmethod
    def _clear_package_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "users_api" or m.startswith("users_api.")]:
            sys.modules.pop(name, None)

    def test_import_database_without_fastapi(self) -> None:
        """Importing users_api.database should not require FastAPI."""

        self._clear_package_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None  # type: ignore[assignment]
        try:
            database_module = importlib.import_module("users_api.database")
            self.assertTrue(hasattr(database_module, "SQLiteUserStore"))

            package = sys.modules.get("users_api")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "MemoryUserStore"))
            self.assertNotIn("users_api.api", sys.modules)
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
