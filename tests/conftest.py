import subprocess
from collections.abc import Sequence
from pathlib import Path

import pandas as pd
from pytest import MonkeyPatch, fixture
from yaml import safe_dump

from amplicon_utils.config import PipelineConfig, SystemConfig
from amplicon_utils.data_io import load_experiment
from amplicon_utils.defaults import EXPORTED_FILES
from amplicon_utils.experiment import MicrobiomeExperiment

SAMPLE_METADATA = (
    'sample-id\tbarcode-sequence\tbody-site\tdays\n'
    '#q2:types\tcategorical\tcategorical\tnumeric\n'
    'S1\tAGCTAGCTAGCT\tgut\t0\n'
    'S2\tCGTACGTACGTA\tgut\t7\n'
    'S3\tTTAATTAATTAA\ttongue\t14\n'
    'S4\tGGCCGGCCGGCC\ttongue\t21\n'
)
FEATURE_TABLE = (
    '# Constructed from biom file\n'
    '#OTU ID\tS1\tS2\tS3\n'
    'f1\t10.0\t0.0\t5.0\n'
    'f2\t20.0\t0.0\t5.0\n'
    'f3\t5.0\t0.0\t10.0\n'
    'f4\t1.0\t0.0\t0.0\n'
)
TAXONOMY = (
    'Feature ID\tTaxon\tConfidence\n'
    'f1\tk__Bacteria; p__Firmicutes; c__Bacilli; o__Lactobacillales; f__Lactobacillaceae; g__Lactobacillus; s__\t0.9871\n'
    'f2\tk__Bacteria; p__Firmicutes; c__Bacilli; o__Lactobacillales; f__Lactobacillaceae; g__Lactobacillus; s__reuteri\t0.9523\n'
    'f3\tk__Bacteria; p__Bacteroidetes; c__Bacteroidia; o__Bacteroidales; f__Bacteroidaceae; g__Bacteroides\t0.9999\n'
    'f4\tUnassigned\t0.7215\n'
    'f5\tk__Bacteria\t0.8\n'
)
TREE = '((f1:0.1,f2:0.2)0.9:0.05,(f3:0.3,f4:0.4)0.8:0.1);\n'
SEQUENCES = (
    '>f1\nTACGTAGGTGGCAAGCGTTG\n'
    '>f2\nTACGTAGGTGGCAAGCGTTA\n'
    '>f3\nTACGGAGGATCCGAGCGTTA\n'
    '>f4\nAACGTAGGTCACAAGCGTTG\n'
)


@fixture
def sequences_dir(tmp_path: Path) -> Path:
    sequences_dir = tmp_path / 'emp-single-end-sequences'
    sequences_dir.mkdir()

    for filename in ('sequences.fastq.gz', 'barcodes.fastq.gz'):
        (sequences_dir / filename).touch()

    return sequences_dir


@fixture
def metadata_path(tmp_path: Path) -> Path:
    metadata_path = tmp_path / 'sample-metadata.tsv'
    metadata_path.write_text(SAMPLE_METADATA)

    return metadata_path


@fixture
def classifier_path(tmp_path: Path) -> Path:
    classifier_path = tmp_path / 'classifier.qza'
    classifier_path.touch()

    return classifier_path


@fixture
def pipeline_config(
    tmp_path: Path, sequences_dir: Path, metadata_path: Path, classifier_path: Path
) -> PipelineConfig:
    return PipelineConfig(
        sequences_dir=sequences_dir,
        metadata_path=metadata_path,
        classifier_path=classifier_path,
        output_dir=tmp_path / 'output',
    )


@fixture
def system_config() -> SystemConfig:
    return SystemConfig()


@fixture
def config_dir(tmp_path: Path, pipeline_config: PipelineConfig) -> Path:
    config_directory = tmp_path / '.config'
    config_directory.mkdir()

    with (config_directory / 'pipeline.yml').open('w') as f:
        safe_dump(
            data=pipeline_config.model_dump(mode='json', exclude={'export_dir'}),
            stream=f,
        )

    return config_directory


def _write_exports(export_dir: Path, exclude: Sequence[str] = ()) -> Path:
    contents = {
        'table_tsv': FEATURE_TABLE,
        'taxonomy': TAXONOMY,
        'tree': TREE,
        'sequences': SEQUENCES,
    }
    export_dir.mkdir(parents=True, exist_ok=True)

    for name, content in contents.items():
        if name in exclude:
            continue

        (export_dir / EXPORTED_FILES[name]).write_text(content)

    return export_dir


@fixture
def export_dir(tmp_path: Path) -> Path:
    return _write_exports(tmp_path / 'exported')


@fixture
def export_dir_without_tree(tmp_path: Path) -> Path:
    return _write_exports(tmp_path / 'exported', exclude=('tree', 'sequences'))


@fixture
def experiment(export_dir: Path, metadata_path: Path) -> MicrobiomeExperiment:
    return load_experiment(export_dir, metadata_path)


@fixture
def small_experiment() -> MicrobiomeExperiment:
    otu_table = pd.DataFrame(
        {'A': [3, 1], 'B': [0, 4]}, index=pd.Index(['x', 'y'], name='feature-id')
    )
    sample_data = pd.DataFrame(
        {'group': ['control', 'treated']}, index=pd.Index(['A', 'B'], name='sample-id')
    )
    tax_table = pd.DataFrame(
        {'Kingdom': ['Bacteria', 'Bacteria'], 'Phylum': ['Firmicutes', None]},
        index=pd.Index(['x', 'y'], name='feature-id'),
    )

    return MicrobiomeExperiment(
        otu_table=otu_table, sample_data=sample_data, tax_table=tax_table
    )


class FakeTools:
    """
    Stands in for `qiime` and `biom` by creating the files each command
    would write. Exported files get the contents of the test data so
    that in-process steps can read them.
    """

    export_contents = {
        'table.qza': ('table', 'biom table'),
        'rooted-tree.qza': ('tree', TREE),
        'taxonomy.qza': ('taxonomy', TAXONOMY),
        'rep-seqs.qza': ('sequences', SEQUENCES),
    }
    output_suffixes = ('.qza', '.qzv', '.biom', '.tsv')

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir
        self.calls: list[tuple[str, ...]] = []

    def _export(self, args: Sequence[str]) -> None:
        input_path = Path(args[args.index('--input-path') + 1])
        export_dir = Path(args[args.index('--output-path') + 1])
        name, content = self.export_contents[input_path.name]

        export_dir.mkdir(parents=True, exist_ok=True)
        (export_dir / EXPORTED_FILES[name]).write_text(content)

    def __call__(self, args: Sequence[str], **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(tuple(args))

        if tuple(args[1:3]) == ('tools', 'export'):
            self._export(args)
        else:
            for arg in args:
                path = Path(arg)
                if (
                    path.suffix in self.output_suffixes
                    and path.is_relative_to(self.output_dir)
                    and not path.exists()
                ):
                    path.touch()

        return subprocess.CompletedProcess(args, 0, stdout='done', stderr='')


@fixture
def fake_tools(monkeypatch: MonkeyPatch, pipeline_config: PipelineConfig) -> FakeTools:
    fake = FakeTools(pipeline_config.output_dir)
    monkeypatch.setattr('amplicon_utils.runner.subprocess.run', fake)

    return fake
