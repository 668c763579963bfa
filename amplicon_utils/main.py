import logging
from functools import cached_property
from pathlib import Path

import fire
import pandas as pd
from pydantic import DirectoryPath, FilePath, computed_field, validate_call
from pydantic.dataclasses import dataclass
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

from .config import PipelineConfig, SystemConfig
from .data_io import load_experiment
from .defaults import CONFIG_DIR, PIPELINE_CONFIG_FILENAME, SYSTEM_CONFIG_FILENAME
from .pipeline import Step, build_steps
from .pydantic_model_config import load_yml_model, strict_config
from .runner import PipelineRunner, StepResult
from .taxonomy import reformat_taxonomy_header
from .utils import _print_table, dump_steps
from .validated_types import Rank

console = Console()
install(console=console)


@dataclass(config=strict_config, frozen=True)
class AmpliconUtils:
    """Command-line utilities that run a QIIME 2 amplicon pipeline and load its results for analysis."""

    config_dir: DirectoryPath = CONFIG_DIR
    log_dir: Path = Path.cwd() / 'amplicon-utils_log'

    def __post_init__(self) -> None:
        self.log_dir.mkdir(exist_ok=True, parents=True)

        root_logger = logging.getLogger(__package__)
        root_logger.setLevel(logging.INFO)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        file_handler = logging.FileHandler(self.log_dir / 'amplicon-utils.log', mode='a')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s | %(levelname)s | %(name)s | %(message)s')
        )
        root_logger.addHandler(file_handler)
        root_logger.addHandler(RichHandler(console=console, show_path=False))

    @computed_field
    @cached_property
    @validate_call(validate_return=True)
    def _pipeline_config_path(self) -> FilePath:
        return self.config_dir / PIPELINE_CONFIG_FILENAME

    @computed_field
    @cached_property
    def _pipeline_config(self: 'AmpliconUtils') -> PipelineConfig:
        return load_yml_model(self._pipeline_config_path, PipelineConfig)

    @computed_field
    @cached_property
    def _system_config(self: 'AmpliconUtils') -> SystemConfig:
        system_config_path = self.config_dir / SYSTEM_CONFIG_FILENAME

        if not system_config_path.is_file():
            return SystemConfig()

        return load_yml_model(system_config_path, SystemConfig)

    @computed_field
    @cached_property
    def _steps(self: 'AmpliconUtils') -> list[Step]:
        return build_steps(self._pipeline_config, self._system_config)

    def _print_results(self, results: list[StepResult]) -> None:
        data = pd.DataFrame(
            [result.model_dump() for result in results]
        ).set_index('step')
        _print_table(data, console=console, message='Pipeline steps:')

    @validate_call
    def plan(self, output: Path | None = None) -> None:
        """Print the steps of the pipeline without running them, optionally writing them to a YAML file."""
        data = pd.DataFrame(
            {
                'step': [step.name for step in self._steps],
                'command': [step.description for step in self._steps],
            },
            index=pd.RangeIndex(1, len(self._steps) + 1, name='#'),
        )
        _print_table(data, console=console)

        if output is not None:
            dump_steps(self._steps, output)

    @validate_call
    def run(self, force: bool = False, dry_run: bool = False) -> None:
        """Run the pipeline, skipping steps whose outputs already exist unless `force` is set."""
        runner = PipelineRunner(
            log_dir=self.log_dir / 'steps',
            environment=self._system_config.environment(),
        )
        results = runner.run(self._steps, force=force, dry_run=dry_run)

        self._print_results(results)

    @validate_call
    def summarize(
        self, export_dir: DirectoryPath | None = None, rank: Rank | None = None
    ) -> None:
        """Load the exported results and print per-sample totals, and optionally the relative abundance of each taxon at `rank`."""
        export_dir = export_dir or self._pipeline_config.export_dir
        experiment = load_experiment(export_dir, self._pipeline_config.metadata_path)

        sample_sums = experiment.sample_sums().rename('reads').to_frame()
        _print_table(
            sample_sums,
            console=console,
            message=f'{experiment.n_taxa} features across {experiment.n_samples} samples',
        )

        if rank is None:
            return

        glommed = experiment.tax_glom(rank).relative_abundance()
        abundance = glommed.otu_table.round(4)
        abundance.index = glommed.tax_table.loc[abundance.index, rank]
        _print_table(abundance, console=console, message=f'Relative abundance by {rank}')

    @validate_call
    def reformat_taxonomy(self, path_in: FilePath, path_out: Path) -> None:
        """Rewrite an exported taxonomy table with a header that `biom add-metadata` accepts."""
        reformat_taxonomy_header(path_in, path_out)


def main():
    fire.Fire(AmpliconUtils)
