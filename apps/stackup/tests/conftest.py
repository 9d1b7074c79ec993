from __future__ import annotations

from pathlib import Path

import pytest

from stackup.testing import build_toolchain
from stage_runner.testing import ScriptedRunner


@pytest.fixture
def toolchain() -> ScriptedRunner:
    return build_toolchain()


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    token = home / ".supabase" / "access-token"
    token.parent.mkdir(parents=True)
    token.write_text("sbp_testtoken\n", encoding="utf-8")
    return home


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
