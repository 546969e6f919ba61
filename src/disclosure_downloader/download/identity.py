"""Network identity rotation hooks (e.g. a VPN reconnect script)."""

import asyncio
import logging
import shlex
import time
from typing import Protocol

from disclosure_downloader.config import DEFAULT_ROTATION_TIMEOUT
from disclosure_downloader.errors import IdentityRotationError

logger = logging.getLogger(__name__)


class IdentityRotator(Protocol):
    """Changes the apparent network origin of subsequent requests."""

    async def connect(self) -> None:
        """Establish the initial identity before any download starts."""
        ...

    async def rotate(self) -> None:
        """Switch to a new identity. May raise IdentityRotationError."""
        ...


class NoopIdentityRotator:
    async def connect(self) -> None:
        return None

    async def rotate(self) -> None:
        return None


class CommandIdentityRotator:
    """Runs external commands to connect and rotate the network identity."""

    def __init__(
        self,
        rotate_command: str | None = None,
        connect_command: str | None = None,
        timeout: float = DEFAULT_ROTATION_TIMEOUT,
    ) -> None:
        self.rotate_command = rotate_command
        self.connect_command = connect_command
        self.timeout = timeout

    async def connect(self) -> None:
        if self.connect_command:
            logger.info("Connecting network identity")
            await self._run(self.connect_command)

    async def rotate(self) -> None:
        if not self.rotate_command:
            logger.debug("No rotate command configured, keeping current identity")
            return
        logger.info("Rotating network identity")
        await self._run(self.rotate_command)

    async def _run(self, command: str) -> None:
        argv = shlex.split(command)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise IdentityRotationError(f"Could not start {argv[0]!r}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise IdentityRotationError(
                f"{argv[0]!r} timed out after {self.timeout:.0f}s"
            ) from e

        if proc.returncode != 0:
            msg = stderr.decode(errors="replace").strip()
            raise IdentityRotationError(
                f"{argv[0]!r} exited with {proc.returncode}: {msg}"
            )


class SerializedIdentityRotator:
    """Serializes rotations from concurrent workers.

    Only one rotation runs at a time. A request made while a rotation was
    running, or within ``cooldown`` seconds after it finished, is coalesced
    into that rotation. A rotation can still land while another worker's
    request is in flight; that request then fails transiently and goes
    through its own retry.
    """

    def __init__(self, inner: IdentityRotator, cooldown: float = 0.0) -> None:
        self.inner = inner
        self.cooldown = cooldown
        self._lock = asyncio.Lock()
        self._last_rotation: float | None = None

    async def connect(self) -> None:
        async with self._lock:
            await self.inner.connect()

    async def rotate(self) -> None:
        requested_at = time.monotonic()
        async with self._lock:
            last = self._last_rotation
            if last is not None and requested_at <= last + self.cooldown:
                logger.debug("Identity already rotated, skipping")
                return
            try:
                await self.inner.rotate()
            finally:
                self._last_rotation = time.monotonic()
