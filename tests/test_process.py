import os
import sys
from pathlib import Path

import pytest

from campaign_autorunner.core.process import spawn_subprocess


@pytest.mark.anyio
@pytest.mark.skipif(os.name != "posix", reason="POSIX sessions")
async def test_spawned_process_runs_in_checkout(tmp_path: Path) -> None:
    output = tmp_path / "logs" / "fuzz.log"
    script = "import os; print(os.getcwd()); print(os.getsid(0) == os.getpid())"

    process = await spawn_subprocess([sys.executable, "-c", script], tmp_path, output)

    assert await process.wait() == 0
    lines = output.read_text(encoding="utf-8").splitlines()
    assert Path(lines[0]).resolve() == tmp_path.resolve()
    # Own session, so a terminal Ctrl-C does not reach the fuzzer.
    assert lines[1] == "True"


@pytest.mark.anyio
async def test_output_is_appended(tmp_path: Path) -> None:
    output = tmp_path / "fuzz.log"
    output.write_text("previous run\n", encoding="utf-8")

    process = await spawn_subprocess(
        [sys.executable, "-c", "print('next run')"], tmp_path, output
    )
    await process.wait()

    assert output.read_text(encoding="utf-8") == "previous run\nnext run\n"


@pytest.mark.anyio
async def test_output_is_discarded_by_default(tmp_path: Path) -> None:
    process = await spawn_subprocess(
        [sys.executable, "-c", "print('noise')"], tmp_path
    )

    assert process.pid > 0
    assert await process.wait() == 0
    assert os.listdir(tmp_path) == []
