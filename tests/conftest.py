"""Shared pytest fixtures and utilities for Jeongsim ERP tests."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping
from urllib.parse import parse_qs, urlparse

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from jeongsim_erp import cli, constants, core_logic, data_manager  # noqa: E402
from jeongsim_erp.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
SCRIPT_URL = "https://script.example.com/macros/s/abc/exec"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Sheets]\n"
    "ScriptUrl = {script_url}\n"
    "Timeout = 5\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    script_url: str


class FakeResponse:
    """Stand-in for the object returned by ``urllib.request.urlopen``."""

    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized local workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "jeongsim_data.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def workbook(master_workbook_path: Path):
    """Return a loaded, empty local workbook."""

    return data_manager.open_workbook(master_workbook_path)


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        script_url: str = SCRIPT_URL,
    ) -> ConfigBundle:
        bundle_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_name
        workbook_path = workbook_factory(subdir=bundle_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                schema_version=schema_version,
                script_url=script_url,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            script_url=script_url,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def offline_context(config_factory: Callable[..., ConfigBundle]) -> core_logic.RuntimeContext:
    """Runtime context whose config has no spreadsheet script URL."""

    return core_logic.load_runtime_context(config_factory(script_url="").config_path)


@pytest.fixture
def make_row() -> Callable[..., list]:
    """Build a transaction-sheet row in the 15-column layout."""

    def _make_row(
        id: Any = "T1",
        date: Any = "2023-10-15",
        doc_type: Any = "거래명세서",
        floor: Any = "",
        client: Any = "(주)한국정밀",
        item: Any = "부품 조립 A",
        spec: Any = "EA",
        unit: Any = "개",
        quantity: Any = "1,000",
        unit_price: Any = "150",
        supply: Any = "150,000",
        tax: Any = "15,000",
        total: Any = "165,000",
        memo: Any = "",
        timestamp: Any = "",
    ) -> list:
        return [id, date, doc_type, floor, client, item, spec, unit, quantity, unit_price, supply, tax, total, memo, timestamp]

    return _make_row


@pytest.fixture
def fake_sheet(monkeypatch: pytest.MonkeyPatch) -> Callable[[Mapping[str, Any]], list]:
    """Serve canned JSON per ``sheetName`` through a patched ``urlopen``.

    Returns a function that installs the sheet contents and hands back the
    list of captured requests. A value that is an exception instance is raised
    instead of being served.
    """

    def _install(sheets: Mapping[str, Any]) -> list:
        requests: list = []

        def fake_urlopen(req, timeout=None):
            requests.append(req)
            query = parse_qs(urlparse(req.full_url).query)
            if req.data is not None or "action" in query:
                payload: Any = {"status": "success"}
            else:
                payload = sheets.get(query["sheetName"][0], [])
            if isinstance(payload, Exception):
                raise payload
            return FakeResponse(json.dumps(payload, ensure_ascii=False).encode("utf-8"))

        monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
        return requests

    return _install


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="jeongsim-cli", description="Jeongsim CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
