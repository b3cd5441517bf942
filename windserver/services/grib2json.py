from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from windserver.models import WIND_PARAMETERS
from windserver.services.errors import ConversionFailed
from windserver.services.fetch import FetchedFile

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class Converter(Protocol):
    def convert(self, fetched: FetchedFile, output_path: Path) -> Path:
        ...


def _parameter_filter(parameters: Sequence[int]) -> str:
    return "[" + ",".join(str(p) for p in parameters) + "]"


def _tail(text: str) -> str:
    text = (text or "").strip()
    if len(text) <= STDERR_TAIL_CHARS:
        return text
    return "..." + text[-STDERR_TAIL_CHARS:]


class Grib2JsonConverter:
    """Runs the external grib2json binary on one fetched GRIB2 subset."""

    def __init__(
        self,
        executable: str | Sequence[str] = "./grib2json",
        *,
        timeout_seconds: float = 300.0,
        parameters: Sequence[int] = WIND_PARAMETERS,
    ) -> None:
        if isinstance(executable, str):
            self.command = shlex.split(executable)
        else:
            self.command = [str(part) for part in executable]
        if not self.command:
            raise ValueError("Converter executable cannot be empty")
        self.timeout_seconds = timeout_seconds
        self.parameters = tuple(parameters)

    def build_args(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            *self.command,
            "--data",
            "--output",
            str(output_path),
            "--names",
            "--compact",
            "--filter.parameter.parameterNumber",
            _parameter_filter(self.parameters),
            str(input_path),
        ]

    def convert(self, fetched: FetchedFile, output_path: Path) -> Path:
        descriptor = fetched.descriptor
        label = f"{descriptor.level.name} {descriptor.forecast.label}"
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_args(fetched.path, output_path)
        logger.debug("Processing %s to JSON: %s", label, " ".join(args))

        try:
            result = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            stderr = exc.stderr.decode(errors="replace") if isinstance(exc.stderr, bytes) else (exc.stderr or "")
            raise ConversionFailed(
                f"grib2json timed out after {self.timeout_seconds:.0f}s for {label}",
                stderr=_tail(stderr),
            ) from exc
        except OSError as exc:
            raise ConversionFailed(f"grib2json process error for {label}: {exc}") from exc

        if result.returncode != 0:
            stderr = _tail(result.stderr)
            raise ConversionFailed(
                f"grib2json failed for {label} (exit {result.returncode}): {stderr}",
                returncode=result.returncode,
                stderr=stderr,
            )
        if not output_path.exists():
            raise ConversionFailed(f"grib2json produced no output for {label}: {output_path}")

        logger.debug("Processed %s successfully", label)
        return output_path
