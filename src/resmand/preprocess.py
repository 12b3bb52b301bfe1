"""Produce config text from a file, optionally through an external preprocessor.

Nothing here touches the resource table. Reading the file and running the
preprocessor are the slow parts of a ``Load``/``Merge`` call, so they run
without holding the store's lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from resmand.exceptions import EncodingError, FileReadError, PreprocessExecError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessOptions:
    """How a single ``Load``/``Merge`` call turns a file into text.

    ``args`` is split on whitespace; an argument containing spaces cannot be
    passed as one token.
    """

    disable: bool = False
    preprocessor: str = ""
    args: str = ""

    def command(self, file_path: str, default_preprocessor: str) -> tuple[str, ...]:
        """Build the argv for running the preprocessor on *file_path*."""
        executable = self.preprocessor.strip() or default_preprocessor
        return (executable, *self.args.split(), file_path)


def _decode(data: bytes, *, path: str, origin: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodingError(f"{origin} for {path} is not valid UTF-8: {exc}", path=path) from exc


async def read_raw_file(file_path: str) -> str:
    """Read *file_path* verbatim as UTF-8 text."""
    try:
        data = await asyncio.to_thread(Path(file_path).read_bytes)
    except (OSError, ValueError) as exc:
        raise FileReadError(f"Cannot read {file_path}: {exc}", path=file_path) from exc
    return _decode(data, path=file_path, origin="File content")


async def run_preprocessor(command: tuple[str, ...], file_path: str) -> str:
    """Run *command* and return its standard output as UTF-8 text.

    No timeout is applied; the call lasts as long as the process does.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as exc:
        raise PreprocessExecError(
            f"Failed to start preprocessor {command[0]}: {exc}",
            path=file_path,
            command=command,
        ) from exc

    stdout, stderr = await proc.communicate()
    stderr_text = stderr.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        raise PreprocessExecError(
            f"Preprocessor {command[0]} exited with status {proc.returncode}: {stderr_text[:200]}",
            path=file_path,
            command=command,
            returncode=proc.returncode,
            stderr=stderr_text,
        )
    if stderr_text:
        _logger.warning("Preprocessor stderr for %s: %s", file_path, stderr_text)
    return _decode(stdout, path=file_path, origin="Preprocessor output")


async def read_config_text(
    file_path: str,
    options: PreprocessOptions,
    *,
    default_preprocessor: str,
) -> str:
    """Return the config text for *file_path* according to *options*.

    Raises
    ------
    FileReadError
        The file could not be read (preprocessing disabled).
    PreprocessExecError
        The preprocessor could not be started or exited non-zero.
    EncodingError
        The text is not valid UTF-8.
    """
    if options.disable:
        _logger.warning("Not using a preprocessor for %s", file_path)
        text = await read_raw_file(file_path)
        _logger.info("Config file %s read successfully", file_path)
    else:
        command = options.command(file_path, default_preprocessor)
        _logger.info("Running %s", " ".join(command))
        text = await run_preprocessor(command, file_path)
        _logger.info("File %s preprocessed successfully", file_path)
    _logger.debug("Config text for %s:\n%s", file_path, text)
    return text
