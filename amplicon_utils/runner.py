import logging
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path
from time import perf_counter
from typing import Literal

from pydantic.dataclasses import dataclass

from .pipeline import Step
from .pydantic_model_config import StrictBaseModel, strict_config

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


class StepResult(StrictBaseModel, frozen=True):
    step: str
    status: Literal['ran', 'skipped', 'planned']
    returncode: int | None = None
    seconds: float = 0.0


@dataclass(config=strict_config, frozen=True)
class PipelineRunner:
    """Run pipeline steps one after the other, logging each to its own file."""

    log_dir: Path
    environment: dict[str, str] | None = None

    def __post_init__(self) -> None:
        self.log_dir.mkdir(exist_ok=True, parents=True)

    def _step_handler(self, index: int, step: Step) -> logging.FileHandler:
        handler = logging.FileHandler(
            self.log_dir / f'{index:02d}_{step.name}.log', mode='w'
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        return handler

    @staticmethod
    def missing(paths: Iterable[Path]) -> list[Path]:
        return [path for path in paths if not path.exists()]

    def is_complete(self, step: Step) -> bool:
        return not self.missing(step.outputs)

    def _execute(self, step: Step, step_logger: logging.Logger) -> int:
        if step.function is not None:
            step.function()
            return 0

        completed = subprocess.run(
            step.command, capture_output=True, text=True, env=self.environment
        )

        if completed.stdout:
            step_logger.debug(completed.stdout)

        if completed.returncode != 0:
            step_logger.error(
                'Exited with code %s:\n%s', completed.returncode, completed.stderr
            )
        elif completed.stderr:
            step_logger.debug(completed.stderr)

        completed.check_returncode()

        return completed.returncode

    def run_step(self, index: int, step: Step, force: bool = False) -> StepResult:
        """Run a single step, skipping it if its outputs already exist

        :param index: Position of the step in the pipeline, used to name
        its log file
        :type index: `int`
        :param step: The step to run
        :type step: `pipeline.Step`
        :param force: Run the step even if its outputs exist, defaults
        to `False`
        :type force: `bool`, optional
        :raises `FileNotFoundError`: If any input of the step is missing
        :raises `subprocess.CalledProcessError`: If the command exits
        with a non-zero code. Any error is logged to the step's log file
        and re-raised
        :return: What happened to the step
        :rtype: `StepResult`
        """
        if not force and self.is_complete(step):
            logger.info('Skipping %s, outputs already exist', step.name)
            return StepResult(step=step.name, status='skipped')

        missing_inputs = self.missing(step.inputs)
        if missing_inputs:
            missing_str = ', '.join(str(path) for path in missing_inputs)
            raise FileNotFoundError(
                f'Cannot run step {step.name}, the following inputs do not exist: {missing_str}'
            )

        for output in step.outputs:
            output.parent.mkdir(exist_ok=True, parents=True)

        step_logger = logging.getLogger(f'{__package__}.steps.{step.name}')
        step_logger.setLevel(logging.DEBUG)
        step_logger.propagate = False

        handler = self._step_handler(index, step)
        step_logger.addHandler(handler)

        logger.info('Running %s: %s', step.name, step.description)
        step_logger.info(step.description)

        start = perf_counter()
        try:
            returncode = self._execute(step, step_logger)
        except Exception:
            step_logger.exception('Step %s failed', step.name)
            logger.error('Step %s failed, see %s', step.name, handler.baseFilename)
            raise
        finally:
            step_logger.removeHandler(handler)
            handler.close()
        seconds = perf_counter() - start

        missing_outputs = self.missing(step.outputs)
        if missing_outputs:
            logger.warning(
                'Step %s finished but did not produce %s',
                step.name,
                ', '.join(str(path) for path in missing_outputs),
            )

        logger.info('Finished %s in %.1f s', step.name, seconds)

        return StepResult(
            step=step.name, status='ran', returncode=returncode, seconds=seconds
        )

    def run(
        self, steps: Sequence[Step], force: bool = False, dry_run: bool = False
    ) -> list[StepResult]:
        if dry_run:
            return [StepResult(step=step.name, status='planned') for step in steps]

        return [
            self.run_step(index, step, force=force)
            for index, step in enumerate(steps, start=1)
        ]
