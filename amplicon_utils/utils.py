"""
This module contains utility functions that are used by other submodules
in the `amplicon-utils` package.

Functions:
    - `_print_table`: Print a `pandas.DataFrame` as a `rich` table

    - `_sequence_representer`: Representer for `yaml` that allows for
    sequences of scalars to be represented as a single line

    - `dump_steps`: Write the commands of a pipeline to a YAML file
"""
from collections.abc import Collection, Sequence
from pathlib import Path

import pandas as pd
from rich.console import Console
from rich.table import Table
from yaml import SafeDumper, SequenceNode, dump

from .pipeline import Step


def _print_table(
    data: pd.DataFrame, console: Console, header: Sequence[str] = (), message: str = ''
) -> None:
    """Print `data` with its index as the first column

    :param data: The data to print
    :type data: `pandas.DataFrame`
    :param console: The console to print to
    :type console: `rich.console.Console`
    :param header: Column titles, defaults to the index name followed by
    the column names of `data`
    :type header: `Sequence[str]`, optional
    :param message: Printed above the table, defaults to ''
    :type message: `str`, optional
    """
    if not header:
        header = [str(data.index.name or ''), *(str(col) for col in data.columns)]

    table = Table(*header)

    for idx, row in data.iterrows():
        table.add_row(str(idx), *(str(v) for v in row.values))

    if table.row_count > 0:
        console.print(message, table, sep='\n')


def _sequence_representer(dumper: SafeDumper, data: list | tuple) -> SequenceNode:
    """
    Representer for `yaml` that allows for sequences of scalars to be
    represented as a single line

    :param dumper: The `yml` dumper to register the representer with
    :type dumper: `yaml.SafeDumper`
    :param data: The data to represent
    :type data: `list` | `tuple`
    :return: A `yaml.SequenceNode` representing the data
    :rtype: `yaml.SequenceNode`
    """
    # Get the first item in the sequence and check its type
    item = data[0] if data else None
    if isinstance(item, Collection) and not isinstance(item, str):
        return dumper.represent_list(data)
    else:
        return dumper.represent_sequence(
            tag='tag:yaml.org,2002:seq', sequence=data, flow_style=True
        )


class _StepDumper(SafeDumper):
    pass


_StepDumper.add_representer(list, _sequence_representer)
_StepDumper.add_representer(tuple, _sequence_representer)


def dump_steps(steps: Sequence[Step], path: Path) -> Path:
    """Write the name, inputs, outputs and command of each step to YAML"""
    records = [
        {
            'name': step.name,
            'inputs': [str(input_) for input_ in step.inputs],
            'outputs': [str(output) for output in step.outputs],
            'command': list(step.command) if step.command else step.description,
        }
        for step in steps
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w') as f:
        dump(records, stream=f, Dumper=_StepDumper, sort_keys=False)

    return path
