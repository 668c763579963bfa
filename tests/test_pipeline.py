from functools import partial
from pathlib import Path

import pytest
from pydantic import ValidationError

from amplicon_utils.config import PipelineConfig, SystemConfig
from amplicon_utils.pipeline import Step, build_steps

ALL_STEPS = [
    'import',
    'demux',
    'demux-summarize',
    'denoise',
    'feature-table-summarize',
    'tabulate-seqs',
    'denoising-stats',
    'phylogeny',
    'classify',
    'taxa-barplot',
    'export-table',
    'export-tree',
    'export-taxonomy',
    'export-sequences',
    'reformat-taxonomy',
    'biom-add-metadata',
    'biom-convert',
]
VISUALIZATION_STEPS = {
    'demux-summarize',
    'feature-table-summarize',
    'tabulate-seqs',
    'denoising-stats',
    'taxa-barplot',
}


def _flag_value(command: tuple[str, ...], flag: str) -> str:
    return command[command.index(flag) + 1]


def _touch(path: Path) -> None:
    path.touch()


def _steps_by_name(steps: list[Step]) -> dict[str, Step]:
    return {step.name: step for step in steps}


class TestStep:
    def test_requires_command_or_function(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            Step(name='nothing', outputs=(tmp_path / 'out',))

    def test_rejects_command_and_function(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            Step(
                name='both',
                outputs=(tmp_path / 'out',),
                command=('echo',),
                function=print,
            )

    def test_description_of_function_step(self, tmp_path: Path):
        step = Step(
            name='function',
            outputs=(tmp_path / 'out',),
            function=partial(_touch, tmp_path / 'out'),
        )

        assert step.description == f'{_touch.__module__}._touch'


class TestBuildSteps:
    def test_step_order(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        steps = build_steps(pipeline_config, system_config)

        assert [step.name for step in steps] == ALL_STEPS

    def test_visualizations_omitted(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        config = pipeline_config.model_copy(update={'visualize': False})
        steps = build_steps(config, system_config)

        assert [step.name for step in steps] == [
            name for name in ALL_STEPS if name not in VISUALIZATION_STEPS
        ]

    def test_inputs_produced_upstream(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        user_inputs = {
            pipeline_config.sequences_dir,
            pipeline_config.metadata_path,
            pipeline_config.classifier_path,
        }
        available = set(user_inputs)

        for step in build_steps(pipeline_config, system_config):
            assert set(step.inputs) <= available, step.name
            available |= set(step.outputs)

    def test_import_type(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        command = _steps_by_name(build_steps(pipeline_config, system_config))[
            'import'
        ].command

        assert command[:3] == ('qiime', 'tools', 'import')
        assert _flag_value(command, '--type') == 'EMPSingleEndSequences'
        assert _flag_value(command, '--input-path') == str(
            pipeline_config.sequences_dir
        )

    def test_demux_barcodes(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        command = _steps_by_name(build_steps(pipeline_config, system_config))[
            'demux'
        ].command

        assert command[:3] == ('qiime', 'demux', 'emp-single')
        assert _flag_value(command, '--m-barcodes-column') == 'barcode-sequence'
        assert '--p-rev-comp-mapping-barcodes' not in command

        config = pipeline_config.model_copy(update={'rev_comp_mapping_barcodes': True})
        command = _steps_by_name(build_steps(config, system_config))['demux'].command

        assert command[-1] == '--p-rev-comp-mapping-barcodes'

    def test_denoise_lengths(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        command = _steps_by_name(build_steps(pipeline_config, system_config))[
            'denoise'
        ].command

        assert command[:3] == ('qiime', 'dada2', 'denoise-single')
        assert _flag_value(command, '--p-trim-left') == '0'
        assert _flag_value(command, '--p-trunc-len') == '120'

    def test_phylogeny_outputs(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        step = _steps_by_name(build_steps(pipeline_config, system_config))[
            'phylogeny'
        ]

        assert step.command[:3] == ('qiime', 'phylogeny', 'align-to-tree-mafft-fasttree')
        assert [path.name for path in step.outputs] == [
            'aligned-rep-seqs.qza',
            'masked-aligned-rep-seqs.qza',
            'unrooted-tree.qza',
            'rooted-tree.qza',
        ]

    def test_classifier(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        command = _steps_by_name(build_steps(pipeline_config, system_config))[
            'classify'
        ].command

        assert _flag_value(command, '--i-classifier') == str(
            pipeline_config.classifier_path
        )

    def test_biom_steps(
        self, pipeline_config: PipelineConfig, system_config: SystemConfig
    ):
        steps = _steps_by_name(build_steps(pipeline_config, system_config))

        add_metadata = steps['biom-add-metadata'].command
        assert add_metadata[:2] == ('biom', 'add-metadata')
        assert _flag_value(add_metadata, '--sc-separated') == 'taxonomy'
        assert _flag_value(add_metadata, '--observation-metadata-fp') == str(
            pipeline_config.exported('biom_taxonomy')
        )

        assert steps['biom-convert'].command[-1] == '--to-tsv'
        assert steps['reformat-taxonomy'].function is not None

    def test_custom_executables(self, pipeline_config: PipelineConfig):
        system_config = SystemConfig(
            qiime_executable='/opt/qiime2/bin/qiime',
            biom_executable='/opt/qiime2/bin/biom',
        )

        executables = {
            step.command[0]
            for step in build_steps(pipeline_config, system_config)
            if step.command
        }

        assert executables == {'/opt/qiime2/bin/qiime', '/opt/qiime2/bin/biom'}
