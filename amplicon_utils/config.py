from functools import cached_property
from os import environ
from pathlib import Path

from pydantic import (
    DirectoryPath,
    FilePath,
    NonNegativeInt,
    computed_field,
    model_validator,
)

from .defaults import (
    ARTIFACTS,
    BARCODES_COLUMN,
    BIOM_EXECUTABLE,
    EXPORT_DIRNAME,
    EXPORTED_FILES,
    N_THREADS,
    QIIME_EXECUTABLE,
    TRIM_LEFT,
    TRUNC_LEN,
    VISUALIZATIONS,
)
from .pydantic_model_config import StrictBaseModel
from .validated_types import Executable, MetadataColumn


class PipelineConfig(StrictBaseModel, frozen=True):
    sequences_dir: DirectoryPath
    metadata_path: FilePath
    classifier_path: FilePath
    output_dir: Path
    barcodes_column: MetadataColumn = BARCODES_COLUMN
    rev_comp_mapping_barcodes: bool = False
    trim_left: NonNegativeInt = TRIM_LEFT
    trunc_len: NonNegativeInt = TRUNC_LEN
    n_threads: NonNegativeInt = N_THREADS
    visualize: bool = True

    @model_validator(mode='after')
    def validate_trunc_len(self: 'PipelineConfig') -> 'PipelineConfig':
        # A truncation length of 0 disables truncation in DADA2
        if self.trunc_len != 0 and self.trunc_len <= self.trim_left:
            raise ValueError(
                f'trunc_len ({self.trunc_len}) must be 0 or greater than trim_left ({self.trim_left}).'
            )

        return self

    @computed_field
    @cached_property
    def export_dir(self) -> Path:
        return self.output_dir / EXPORT_DIRNAME

    def artifact(self, name: str) -> Path:
        return self.output_dir / ARTIFACTS[name]

    def visualization(self, name: str) -> Path:
        return self.output_dir / VISUALIZATIONS[name]

    def exported(self, name: str) -> Path:
        return self.export_dir / EXPORTED_FILES[name]


class SystemConfig(StrictBaseModel, frozen=True):
    qiime_executable: Executable = QIIME_EXECUTABLE
    biom_executable: Executable = BIOM_EXECUTABLE
    tmp_dir: DirectoryPath | None = None

    def environment(self) -> dict[str, str]:
        env = dict(environ)

        if self.tmp_dir is not None:
            env['TMPDIR'] = str(self.tmp_dir)

        return env
