from typing import Annotated

from pydantic import AfterValidator, StringConstraints

from .defaults import RANKS


def _validate_rank(rank: str) -> str:
    normalized = rank.capitalize()

    if normalized not in RANKS:
        raise ValueError(f'Taxonomic rank must be one of {RANKS}, not {rank}')

    return normalized


Rank = Annotated[str, AfterValidator(_validate_rank)]

# QIIME 2 metadata column names cannot be empty or start with `#`
MetadataColumn = Annotated[str, StringConstraints(pattern=r'^[^#\s][^\t]*$')]

Executable = Annotated[str, StringConstraints(pattern=r'^\S+$')]
