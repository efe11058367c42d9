"""Run the cargo phases for one scenario."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from cargo_leela.cargo import NullProgress, ProgressReporter, cargo_argv, run_cargo, rustflags
from cargo_leela.interrupt import CancellationToken
from cargo_leela.log_file import LogFile
from cargo_leela.models import BuildDir, Options, Phase, ProcessStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseResult:
    phase: Phase
    argv: list[str]
    status: ProcessStatus


@dataclass
class ScenarioOutcome:
    """Results of each phase run, stopping at the first that didn't succeed."""

    phase_results: list[PhaseResult] = field(default_factory=list)

    @property
    def last_phase(self) -> Phase | None:
        return self.phase_results[-1].phase if self.phase_results else None

    @property
    def last_status(self) -> ProcessStatus | None:
        return self.phase_results[-1].status if self.phase_results else None

    @property
    def success(self) -> bool:
        return bool(self.phase_results) and all(r.status.success for r in self.phase_results)


class Engine:
    """Drives cargo check/build/test in a build directory."""

    def __init__(
        self,
        options: Options | None = None,
        timeout: float = 300.0,
        progress: ProgressReporter | None = None,
        token: CancellationToken | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.options = options or Options()
        self.timeout = timeout
        self.progress = progress or NullProgress()
        self.token = token
        self.env = env
        # Computed once; every phase sees the same flags.
        self.rustflags = rustflags(env)

    def run(
        self,
        build_dir: BuildDir,
        log_file: LogFile,
        package_name: str | None = None,
        phases: Sequence[Phase] = (Phase.BUILD, Phase.TEST),
    ) -> ScenarioOutcome:
        outcome = ScenarioOutcome()
        for phase in phases:
            argv = cargo_argv(package_name, phase, self.options, self.env)
            status = run_cargo(
                build_dir,
                argv,
                log_file,
                self.timeout,
                self.progress,
                self.rustflags,
                self.token,
                self.env,
            )
            outcome.phase_results.append(PhaseResult(phase, argv, status))
            if not status.success:
                logger.debug("%s phase did not succeed: %s", phase.subcommand, status)
                break
        return outcome
