"""
This module contains functions that read the files exported at the end
of the pipeline and assemble them into a `MicrobiomeExperiment`.

Functions:
    - `read_feature_table`: Read a count table converted to TSV by `biom`

    - `read_sample_metadata`: Read a QIIME 2 sample metadata file

    - `read_taxonomy`: Read exported taxonomy into one column per rank

    - `read_tree`: Read a newick tree

    - `read_sequences`: Read representative sequences from FASTA

    - `load_experiment`: Read all of the above into a
    `MicrobiomeExperiment`
"""
import logging
from pathlib import Path

import pandas as pd
from Bio import SeqIO
from dendropy import Tree

from .defaults import (
    BIOM_TSV_COMMENT,
    EXPORTED_FILES,
    METADATA_DIRECTIVE_PREFIX,
)
from .experiment import MicrobiomeExperiment
from .taxonomy import read_taxonomy_tsv, taxonomy_to_ranks

logger = logging.getLogger(__name__)

# Headers QIIME 2 accepts for the ID column of a metadata file
SAMPLE_ID_HEADERS = {
    'id',
    'sampleid',
    'sample id',
    'sample-id',
    'featureid',
    'feature id',
    'feature-id',
}
CASE_SENSITIVE_ID_HEADERS = {'#SampleID', '#Sample ID', '#OTUID', '#OTU ID', 'sample_name'}


def _is_id_header(field: str) -> bool:
    return field.lower() in SAMPLE_ID_HEADERS or field in CASE_SENSITIVE_ID_HEADERS


def read_feature_table(path: Path) -> pd.DataFrame:
    """Read a feature table written by `biom convert --to-tsv`

    :param path: Path to the TSV table
    :type path: `pathlib.Path`
    :return: Integer counts with features as rows and samples as columns
    :rtype: `pandas.DataFrame`
    """
    with path.open() as f:
        first_line = f.readline()

    skiprows = 1 if first_line.startswith(BIOM_TSV_COMMENT) else 0
    table = pd.read_csv(path, sep='\t', skiprows=skiprows, index_col=0, dtype=str)
    table.index.name = 'feature-id'

    return table.astype(float).round().astype('int64')


def _to_numeric_if_possible(column: pd.Series) -> pd.Series:
    values = column.dropna()

    try:
        pd.to_numeric(values)
    except (TypeError, ValueError):
        return column

    return pd.to_numeric(column)


def read_sample_metadata(path: Path) -> pd.DataFrame:
    """
    Read a QIIME 2 metadata file. Comment lines before the header are
    skipped, a `#q2:types` directive is used to decide which columns
    are numeric and is then dropped, and the ID column becomes the
    index.

    :param path: Path to the tab-separated metadata file
    :type path: `pathlib.Path`
    :raises `ValueError`: If no header line can be found
    :return: Sample metadata indexed by sample ID
    :rtype: `pandas.DataFrame`
    """
    with path.open() as f:
        lines = f.read().splitlines()

    header_index = next(
        (
            i
            for i, line in enumerate(lines)
            if line.strip()
            and (not line.startswith('#') or _is_id_header(line.split('\t')[0]))
        ),
        None,
    )
    if header_index is None:
        raise ValueError(f'Could not find a header line in {path}.')

    metadata = pd.read_csv(
        path,
        sep='\t',
        skiprows=header_index,
        dtype=str,
        keep_default_na=False,
        na_values=[''],
        skip_blank_lines=True,
    )
    id_column = metadata.columns[0]

    directives = metadata[metadata[id_column].str.startswith('#', na=False)]
    column_types = {}
    for _, directive in directives.iterrows():
        if directive[id_column] == f'{METADATA_DIRECTIVE_PREFIX}types':
            column_types = directive.drop(id_column).str.lower().to_dict()

    metadata = metadata[~metadata[id_column].str.startswith('#', na=False)]
    metadata = metadata.set_index(id_column)
    metadata.index.name = 'sample-id'

    for column in metadata.columns:
        column_type = column_types.get(column)

        if column_type == 'categorical':
            continue

        if column_type == 'numeric':
            metadata[column] = pd.to_numeric(metadata[column])
        else:
            metadata[column] = _to_numeric_if_possible(metadata[column])

    return metadata


def read_taxonomy(path: Path) -> pd.DataFrame:
    """Read exported taxonomy into a table with one column per rank

    :param path: Path to `taxonomy.tsv` or its biom-formatted copy
    :type path: `pathlib.Path`
    :return: Taxonomy indexed by feature ID
    :rtype: `pandas.DataFrame`
    """
    ranks = taxonomy_to_ranks(read_taxonomy_tsv(path))
    tax_table = pd.DataFrame(ranks.to_dict(as_series=False))

    tax_table = tax_table.set_index('Feature ID')
    tax_table.index.name = 'feature-id'

    return tax_table


def read_tree(path: Path) -> Tree:
    return Tree.get(
        path=str(path),
        schema='newick',
        preserve_underscores=True,
        rooting='default-rooted',
    )


def read_sequences(path: Path) -> dict[str, str]:
    return {record.id: str(record.seq) for record in SeqIO.parse(path, 'fasta')}


def load_experiment(
    export_dir: Path, metadata_path: Path, require_all: bool = False
) -> MicrobiomeExperiment:
    """
    Load the files exported by the pipeline into a
    `MicrobiomeExperiment`. The count table, taxonomy and sample
    metadata are required. The tree and representative sequences are
    loaded when present.

    :param export_dir: Directory the pipeline exported files into
    :type export_dir: `pathlib.Path`
    :param metadata_path: Path to the sample metadata file
    :type metadata_path: `pathlib.Path`
    :param require_all: Raise an error if the tree or sequences are
    missing, defaults to `False`
    :type require_all: `bool`, optional
    :raises `FileNotFoundError`: If a required file is missing
    :return: The assembled experiment
    :rtype: `MicrobiomeExperiment`
    """
    paths = {name: export_dir / filename for name, filename in EXPORTED_FILES.items()}

    required = ['table_tsv', 'taxonomy'] + (['tree', 'sequences'] if require_all else [])
    missing = [str(paths[name]) for name in required if not paths[name].exists()]
    if not metadata_path.exists():
        missing.append(str(metadata_path))
    if missing:
        raise FileNotFoundError(
            f'Cannot load experiment, the following files do not exist: {", ".join(missing)}'
        )

    phy_tree = read_tree(paths['tree']) if paths['tree'].exists() else None
    refseq = read_sequences(paths['sequences']) if paths['sequences'].exists() else None

    for name, component in (('tree', phy_tree), ('sequences', refseq)):
        if component is None:
            logger.warning('%s not found, loading without it', paths[name])

    experiment = MicrobiomeExperiment(
        otu_table=read_feature_table(paths['table_tsv']),
        sample_data=read_sample_metadata(metadata_path),
        tax_table=read_taxonomy(paths['taxonomy']),
        phy_tree=phy_tree,
        refseq=refseq,
    )
    logger.info(
        'Loaded %s features across %s samples from %s',
        experiment.n_taxa,
        experiment.n_samples,
        export_dir,
    )

    return experiment
