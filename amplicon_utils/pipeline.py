"""
This module defines the ordered list of steps that take a directory of
EMP single-end sequences to files that can be loaded for analysis.

Every computation is done by `qiime` or `biom`. The steps only fix the
order of the invocations, their parameters and the file names used to
hand data from one step to the next.
"""
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Any

from pydantic import model_validator

from .config import PipelineConfig, SystemConfig
from .defaults import IMPORT_TYPE
from .pydantic_model_config import StrictBaseModel
from .taxonomy import reformat_taxonomy_header


class Step(StrictBaseModel, frozen=True):
    name: str
    inputs: tuple[Path, ...] = ()
    outputs: tuple[Path, ...]
    command: tuple[str, ...] = ()
    function: Callable[[], Any] | None = None
    is_visualization: bool = False

    @model_validator(mode='after')
    def validate_action(self: 'Step') -> 'Step':
        if bool(self.command) == (self.function is not None):
            raise ValueError(
                f'Step {self.name} must define exactly one of a command or a function.'
            )

        return self

    @property
    def description(self) -> str:
        if self.command:
            return ' '.join(self.command)

        function = self.function
        while isinstance(function, partial):
            function = function.func

        return f'{function.__module__}.{function.__qualname__}'


def _import_steps(config: PipelineConfig, qiime: str) -> list[Step]:
    sequences = config.artifact('sequences')
    demux = config.artifact('demux')
    demux_details = config.artifact('demux_details')

    demux_command = [
        qiime, 'demux', 'emp-single',
        '--i-seqs', str(sequences),
        '--m-barcodes-file', str(config.metadata_path),
        '--m-barcodes-column', config.barcodes_column,
        '--o-per-sample-sequences', str(demux),
        '--o-error-correction-details', str(demux_details),
    ]
    if config.rev_comp_mapping_barcodes:
        demux_command.append('--p-rev-comp-mapping-barcodes')

    return [
        Step(
            name='import',
            inputs=(config.sequences_dir,),
            outputs=(sequences,),
            command=(
                qiime, 'tools', 'import',
                '--type', IMPORT_TYPE,
                '--input-path', str(config.sequences_dir),
                '--output-path', str(sequences),
            ),
        ),
        Step(
            name='demux',
            inputs=(sequences, config.metadata_path),
            outputs=(demux, demux_details),
            command=tuple(demux_command),
        ),
        Step(
            name='demux-summarize',
            inputs=(demux,),
            outputs=(config.visualization('demux'),),
            command=(
                qiime, 'demux', 'summarize',
                '--i-data', str(demux),
                '--o-visualization', str(config.visualization('demux')),
            ),
            is_visualization=True,
        ),
    ]


def _denoise_steps(config: PipelineConfig, qiime: str) -> list[Step]:
    demux = config.artifact('demux')
    table = config.artifact('table')
    rep_seqs = config.artifact('rep_seqs')
    stats = config.artifact('denoising_stats')

    return [
        Step(
            name='denoise',
            inputs=(demux,),
            outputs=(table, rep_seqs, stats),
            command=(
                qiime, 'dada2', 'denoise-single',
                '--i-demultiplexed-seqs', str(demux),
                '--p-trim-left', str(config.trim_left),
                '--p-trunc-len', str(config.trunc_len),
                '--p-n-threads', str(config.n_threads),
                '--o-table', str(table),
                '--o-representative-sequences', str(rep_seqs),
                '--o-denoising-stats', str(stats),
            ),
        ),
        Step(
            name='feature-table-summarize',
            inputs=(table, config.metadata_path),
            outputs=(config.visualization('table'),),
            command=(
                qiime, 'feature-table', 'summarize',
                '--i-table', str(table),
                '--m-sample-metadata-file', str(config.metadata_path),
                '--o-visualization', str(config.visualization('table')),
            ),
            is_visualization=True,
        ),
        Step(
            name='tabulate-seqs',
            inputs=(rep_seqs,),
            outputs=(config.visualization('rep_seqs'),),
            command=(
                qiime, 'feature-table', 'tabulate-seqs',
                '--i-data', str(rep_seqs),
                '--o-visualization', str(config.visualization('rep_seqs')),
            ),
            is_visualization=True,
        ),
        Step(
            name='denoising-stats',
            inputs=(stats,),
            outputs=(config.visualization('denoising_stats'),),
            command=(
                qiime, 'metadata', 'tabulate',
                '--m-input-file', str(stats),
                '--o-visualization', str(config.visualization('denoising_stats')),
            ),
            is_visualization=True,
        ),
    ]


def _tree_and_taxonomy_steps(config: PipelineConfig, qiime: str) -> list[Step]:
    table = config.artifact('table')
    rep_seqs = config.artifact('rep_seqs')
    aligned = config.artifact('aligned_rep_seqs')
    masked = config.artifact('masked_aligned_rep_seqs')
    unrooted = config.artifact('unrooted_tree')
    rooted = config.artifact('rooted_tree')
    taxonomy = config.artifact('taxonomy')

    return [
        Step(
            name='phylogeny',
            inputs=(rep_seqs,),
            outputs=(aligned, masked, unrooted, rooted),
            command=(
                qiime, 'phylogeny', 'align-to-tree-mafft-fasttree',
                '--i-sequences', str(rep_seqs),
                '--p-n-threads', str(config.n_threads),
                '--o-alignment', str(aligned),
                '--o-masked-alignment', str(masked),
                '--o-tree', str(unrooted),
                '--o-rooted-tree', str(rooted),
            ),
        ),
        Step(
            name='classify',
            inputs=(config.classifier_path, rep_seqs),
            outputs=(taxonomy,),
            command=(
                qiime, 'feature-classifier', 'classify-sklearn',
                '--i-classifier', str(config.classifier_path),
                '--i-reads', str(rep_seqs),
                '--p-n-jobs', str(config.n_threads or -1),
                '--o-classification', str(taxonomy),
            ),
        ),
        Step(
            name='taxa-barplot',
            inputs=(table, taxonomy, config.metadata_path),
            outputs=(config.visualization('taxa_barplot'),),
            command=(
                qiime, 'taxa', 'barplot',
                '--i-table', str(table),
                '--i-taxonomy', str(taxonomy),
                '--m-metadata-file', str(config.metadata_path),
                '--o-visualization', str(config.visualization('taxa_barplot')),
            ),
            is_visualization=True,
        ),
    ]


def _export_steps(config: PipelineConfig, qiime: str, biom: str) -> list[Step]:
    artifact_to_exported = (
        ('export-table', 'table', 'table'),
        ('export-tree', 'rooted_tree', 'tree'),
        ('export-taxonomy', 'taxonomy', 'taxonomy'),
        ('export-sequences', 'rep_seqs', 'sequences'),
    )
    steps = [
        Step(
            name=step_name,
            inputs=(config.artifact(artifact_name),),
            outputs=(config.exported(exported_name),),
            command=(
                qiime, 'tools', 'export',
                '--input-path', str(config.artifact(artifact_name)),
                '--output-path', str(config.export_dir),
            ),
        )
        for step_name, artifact_name, exported_name in artifact_to_exported
    ]

    feature_table = config.exported('table')
    biom_taxonomy = config.exported('biom_taxonomy')
    steps += [
        Step(
            name='reformat-taxonomy',
            inputs=(config.exported('taxonomy'),),
            outputs=(biom_taxonomy,),
            function=partial(
                reformat_taxonomy_header,
                path_in=config.exported('taxonomy'),
                path_out=biom_taxonomy,
            ),
        ),
        Step(
            name='biom-add-metadata',
            inputs=(feature_table, biom_taxonomy),
            outputs=(config.exported('table_with_taxonomy'),),
            command=(
                biom, 'add-metadata',
                '--input-fp', str(feature_table),
                '--output-fp', str(config.exported('table_with_taxonomy')),
                '--observation-metadata-fp', str(biom_taxonomy),
                '--sc-separated', 'taxonomy',
            ),
        ),
        Step(
            name='biom-convert',
            inputs=(feature_table,),
            outputs=(config.exported('table_tsv'),),
            command=(
                biom, 'convert',
                '--input-fp', str(feature_table),
                '--output-fp', str(config.exported('table_tsv')),
                '--to-tsv',
            ),
        ),
    ]

    return steps


def build_steps(config: PipelineConfig, system_config: SystemConfig) -> list[Step]:
    """Build the ordered steps of the pipeline

    :param config: Inputs, outputs and literal parameters of the run
    :type config: `config.PipelineConfig`
    :param system_config: Which executables to invoke
    :type system_config: `config.SystemConfig`
    :return: The steps, in the order in which they must run
    :rtype: `list[Step]`
    """
    qiime = system_config.qiime_executable
    biom = system_config.biom_executable

    steps = (
        _import_steps(config, qiime)
        + _denoise_steps(config, qiime)
        + _tree_and_taxonomy_steps(config, qiime)
        + _export_steps(config, qiime, biom)
    )

    if not config.visualize:
        steps = [step for step in steps if not step.is_visualization]

    return steps
