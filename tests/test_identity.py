import asyncio
import shlex
import sys
from pathlib import Path

import pytest

from disclosure_downloader.download.identity import (
    CommandIdentityRotator,
    NoopIdentityRotator,
    SerializedIdentityRotator,
)
from disclosure_downloader.errors import IdentityRotationError

PYTHON = shlex.quote(sys.executable)


def py_command(code: str) -> str:
    return f"{PYTHON} -c {shlex.quote(code)}"


class SlowRotator:
    def __init__(self) -> None:
        self.rotations = 0
        self.active = 0
        self.max_active = 0

    async def connect(self) -> None:
        return None

    async def rotate(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        self.rotations += 1
        self.active -= 1


class TestNoopIdentityRotator:
    def test_does_nothing(self):
        rotator = NoopIdentityRotator()
        asyncio.run(rotator.connect())
        asyncio.run(rotator.rotate())


class TestCommandIdentityRotator:
    def test_success(self, tmp_path: Path):
        marker = tmp_path / "rotated"
        code = f"open({str(marker)!r}, 'w').write('ok')"
        rotator = CommandIdentityRotator(py_command(code))
        asyncio.run(rotator.rotate())
        assert marker.read_text() == "ok"

    def test_connect_runs_connect_command(self, tmp_path: Path):
        marker = tmp_path / "connected"
        code = f"open({str(marker)!r}, 'w').write('ok')"
        rotator = CommandIdentityRotator(
            py_command("pass"), connect_command=py_command(code)
        )
        asyncio.run(rotator.connect())
        assert marker.exists()

    def test_connect_without_command_is_noop(self):
        rotator = CommandIdentityRotator(py_command("raise SystemExit(1)"))
        asyncio.run(rotator.connect())

    def test_rotate_without_command_is_noop(self, tmp_path: Path):
        marker = tmp_path / "connected"
        code = f"open({str(marker)!r}, 'w').write('ok')"
        rotator = CommandIdentityRotator(connect_command=py_command(code))
        asyncio.run(rotator.rotate())
        assert not marker.exists()
        asyncio.run(rotator.connect())
        assert marker.exists()

    def test_nonzero_exit(self):
        code = "import sys; sys.stderr.write('no servers'); sys.exit(3)"
        rotator = CommandIdentityRotator(py_command(code))
        with pytest.raises(IdentityRotationError, match="exited with 3: no servers"):
            asyncio.run(rotator.rotate())

    def test_missing_executable(self, tmp_path: Path):
        rotator = CommandIdentityRotator(str(tmp_path / "missing_rotate_vpn.sh"))
        with pytest.raises(IdentityRotationError, match="Could not start"):
            asyncio.run(rotator.rotate())

    def test_timeout(self):
        rotator = CommandIdentityRotator(
            py_command("import time; time.sleep(10)"), timeout=0.2
        )
        with pytest.raises(IdentityRotationError, match="timed out"):
            asyncio.run(rotator.rotate())


class TestSerializedIdentityRotator:
    def test_concurrent_requests_coalesce(self):
        inner = SlowRotator()
        rotator = SerializedIdentityRotator(inner)

        async def go():
            await asyncio.gather(*(rotator.rotate() for _ in range(5)))

        asyncio.run(go())
        assert inner.max_active == 1
        assert inner.rotations == 1

    def test_sequential_requests_rotate_each_time(self):
        inner = SlowRotator()
        rotator = SerializedIdentityRotator(inner)

        async def go():
            await rotator.rotate()
            await asyncio.sleep(0.01)
            await rotator.rotate()

        asyncio.run(go())
        assert inner.rotations == 2

    def test_cooldown_skips_recent_rotation(self):
        inner = SlowRotator()
        rotator = SerializedIdentityRotator(inner, cooldown=60.0)

        async def go():
            await rotator.rotate()
            await asyncio.sleep(0.01)
            await rotator.rotate()

        asyncio.run(go())
        assert inner.rotations == 1
