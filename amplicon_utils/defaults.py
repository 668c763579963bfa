"""
This module contains some handy defaults for the `amplicon-utils` package.
"""
from pathlib import Path

# Configuration files
CONFIG_DIR = Path.home() / '.config' / 'amplicon-utils'
PIPELINE_CONFIG_FILENAME = 'pipeline.yml'
SYSTEM_CONFIG_FILENAME = 'system.yml'

# Executables
QIIME_EXECUTABLE = 'qiime'
BIOM_EXECUTABLE = 'biom'

# Literal parameters for import, demultiplexing and denoising
IMPORT_TYPE = 'EMPSingleEndSequences'
BARCODES_COLUMN = 'barcode-sequence'
TRIM_LEFT = 0
TRUNC_LEN = 120
N_THREADS = 1

# Artifact names. The values are relative to the output directory
ARTIFACTS = {
    'sequences': Path('emp-single-end-sequences.qza'),
    'demux': Path('demux.qza'),
    'demux_details': Path('demux-details.qza'),
    'table': Path('table.qza'),
    'rep_seqs': Path('rep-seqs.qza'),
    'denoising_stats': Path('denoising-stats.qza'),
    'aligned_rep_seqs': Path('aligned-rep-seqs.qza'),
    'masked_aligned_rep_seqs': Path('masked-aligned-rep-seqs.qza'),
    'unrooted_tree': Path('unrooted-tree.qza'),
    'rooted_tree': Path('rooted-tree.qza'),
    'taxonomy': Path('taxonomy.qza'),
}
VISUALIZATIONS = {
    'demux': Path('demux.qzv'),
    'table': Path('table.qzv'),
    'rep_seqs': Path('rep-seqs.qzv'),
    'denoising_stats': Path('denoising-stats.qzv'),
    'taxa_barplot': Path('taxa-bar-plots.qzv'),
}
EXPORT_DIRNAME = 'exported'
EXPORTED_FILES = {
    'table': Path('feature-table.biom'),
    'tree': Path('tree.nwk'),
    'taxonomy': Path('taxonomy.tsv'),
    'sequences': Path('dna-sequences.fasta'),
    'biom_taxonomy': Path('biom-taxonomy.tsv'),
    'table_with_taxonomy': Path('table-with-taxonomy.biom'),
    'table_tsv': Path('feature-table.tsv'),
}

# Taxonomy formatting
TAXONOMY_HEADER = {
    'Feature ID': '#OTUID',
    'Taxon': 'taxonomy',
    'Confidence': 'confidence',
}
TAXON_SEP = ';'
RANKS = ('Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus', 'Species')
RANK_PREFIX_PATTERN = r'^(?:[a-z]|D_\d+)__'

# QIIME 2 metadata formatting
METADATA_DIRECTIVE_PREFIX = '#q2:'
BIOM_TSV_COMMENT = '# Constructed from biom file'
