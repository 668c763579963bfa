"""
This module contains the small amount of text reformatting needed to
hand the taxonomy exported by QIIME 2 to `biom` and to the loader.

Functions:
    - `reformat_taxonomy_header`: Rename the columns of an exported
    `taxonomy.tsv` so that `biom add-metadata` accepts it

    - `split_taxon`: Split a lineage string into one value per rank

    - `taxonomy_to_ranks`: Turn a taxonomy table into a table with one
    column per rank
"""
import logging
from pathlib import Path
from re import sub

import polars as pl

from .defaults import RANK_PREFIX_PATTERN, RANKS, TAXON_SEP, TAXONOMY_HEADER

logger = logging.getLogger(__name__)


def read_taxonomy_tsv(path: Path) -> pl.DataFrame:
    """Read a taxonomy table, keeping every value as a string

    :param path: Path to the exported or reformatted taxonomy table
    :type path: `pathlib.Path`
    :return: The table, with columns named as QIIME 2 exports them
    :rtype: `polars.DataFrame`
    """
    taxonomy = pl.read_csv(path, separator='\t', infer_schema_length=0)
    biom_to_qiime = {biom: qiime for qiime, biom in TAXONOMY_HEADER.items()}

    return taxonomy.rename(
        {col: biom_to_qiime[col] for col in taxonomy.columns if col in biom_to_qiime}
    )


def reformat_taxonomy_header(path_in: Path, path_out: Path) -> Path:
    """
    Rewrite the header of an exported `taxonomy.tsv` from
    `Feature ID, Taxon, Confidence` to `#OTUID, taxonomy, confidence`.
    The data rows are written back unchanged.

    :param path_in: Path to the `taxonomy.tsv` exported by QIIME 2
    :type path_in: `pathlib.Path`
    :param path_out: Where to write the reformatted table
    :type path_out: `pathlib.Path`
    :raises `ValueError`: If the table is missing a required column
    :return: `path_out`
    :rtype: `pathlib.Path`
    """
    with path_in.open(newline='') as f:
        lines = f.readlines()

    if not lines:
        raise ValueError(f'{path_in} is empty.')

    header, *rows = lines

    header_fields = header.rstrip('\r\n').split('\t')
    line_end = header[len(header.rstrip('\r\n')) :]

    missing_columns = TAXONOMY_HEADER.keys() - set(header_fields)
    if missing_columns:
        raise ValueError(
            f'{path_in} is missing the columns {sorted(missing_columns)}.'
        )

    reformatted_header = '\t'.join(
        TAXONOMY_HEADER.get(field, field) for field in header_fields
    )

    path_out.parent.mkdir(parents=True, exist_ok=True)
    with path_out.open('w', newline='') as f:
        f.write(reformatted_header + line_end)
        f.writelines(rows)

    logger.info(
        'Wrote %s features with a biom-compatible header to %s',
        sum(1 for row in rows if row.strip()),
        path_out,
    )

    return path_out


def split_taxon(taxon: str | None, ranks: tuple[str, ...] = RANKS) -> list[str | None]:
    """
    Split a lineage like `k__Bacteria; p__Firmicutes; c__` into one
    value per rank. Rank prefixes are stripped, empty ranks become
    `None` and the result is padded with `None` to the number of ranks.

    :param taxon: The lineage string
    :type taxon: `str` | `None`
    :param ranks: The ranks to split into, defaults to `defaults.RANKS`
    :type ranks: `tuple[str, ...]`, optional
    :raises `ValueError`: If the lineage has more levels than `ranks`
    :return: A list with one element per rank
    :rtype: `list[str | None]`
    """
    if taxon is None:
        return [None] * len(ranks)

    levels = [sub(RANK_PREFIX_PATTERN, '', level.strip()) for level in taxon.split(TAXON_SEP)]
    levels = [level if level else None for level in levels]

    # Trailing separators produce empty levels that are not real ranks
    while levels and levels[-1] is None and len(levels) > len(ranks):
        levels.pop()

    if len(levels) > len(ranks):
        raise ValueError(
            f'The lineage {taxon!r} has {len(levels)} levels, but only {len(ranks)} ranks are defined.'
        )

    return levels + [None] * (len(ranks) - len(levels))


def taxonomy_to_ranks(
    taxonomy: pl.DataFrame, ranks: tuple[str, ...] = RANKS
) -> pl.DataFrame:
    """Replace the lineage column of `taxonomy` with one column per rank

    :param taxonomy: Taxonomy table with `Feature ID` and `Taxon` columns
    :type taxonomy: `polars.DataFrame`
    :param ranks: The ranks to split into, defaults to `defaults.RANKS`
    :type ranks: `tuple[str, ...]`, optional
    :return: A table with a `Feature ID` column followed by one column
    per rank
    :rtype: `polars.DataFrame`
    """
    rows = [split_taxon(taxon, ranks=ranks) for taxon in taxonomy.get_column('Taxon')]
    rank_table = pl.DataFrame(
        rows, schema={rank: pl.Utf8 for rank in ranks}, orient='row'
    )

    return pl.concat([taxonomy.select('Feature ID'), rank_table], how='horizontal')
