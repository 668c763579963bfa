"""
This module contains `MicrobiomeExperiment`, an in-memory container that
holds the files produced by the pipeline together: the count table,
sample metadata, taxonomy, phylogenetic tree and representative
sequences.

Like phyloseq, every component is pruned to the features and samples
that the components have in common when the experiment is built, so the
components always agree with each other.
"""
from collections.abc import Collection
from typing import Any

import pandas as pd
from dendropy import Tree
from numpy import nan
from pydantic import model_validator

from .defaults import RANKS, TAXON_SEP
from .pydantic_model_config import StrictBaseModel
from .validated_types import _validate_rank


def _tree_labels(tree: Tree) -> set[str]:
    return {leaf.taxon.label for leaf in tree.leaf_node_iter() if leaf.taxon is not None}


class MicrobiomeExperiment(StrictBaseModel, frozen=True):
    otu_table: pd.DataFrame
    sample_data: pd.DataFrame
    tax_table: pd.DataFrame
    phy_tree: Tree | None = None
    refseq: dict[str, str] | None = None

    @model_validator(mode='before')
    @classmethod
    def prune_to_shared_ids(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        otu_table: pd.DataFrame = data['otu_table']
        sample_data: pd.DataFrame = data['sample_data']
        tax_table: pd.DataFrame = data['tax_table']
        phy_tree: Tree | None = data.get('phy_tree')
        refseq: dict[str, str] | None = data.get('refseq')

        shared_features = set(otu_table.index) & set(tax_table.index)
        if phy_tree is not None:
            shared_features &= _tree_labels(phy_tree)
        if refseq is not None:
            shared_features &= set(refseq)

        shared_samples = set(otu_table.columns) & set(sample_data.index)

        if not shared_features:
            raise ValueError('The components of the experiment share no feature IDs.')
        if not shared_samples:
            raise ValueError('The components of the experiment share no sample IDs.')

        feature_ids = [id_ for id_ in otu_table.index if id_ in shared_features]
        sample_ids = [id_ for id_ in otu_table.columns if id_ in shared_samples]

        pruned = dict(data)
        pruned['otu_table'] = otu_table.loc[feature_ids, sample_ids]
        pruned['sample_data'] = sample_data.loc[sample_ids]
        pruned['tax_table'] = tax_table.loc[feature_ids]

        if phy_tree is not None and _tree_labels(phy_tree) != shared_features:
            pruned['phy_tree'] = phy_tree.extract_tree_with_taxa_labels(
                labels=shared_features
            )
        if refseq is not None:
            pruned['refseq'] = {id_: refseq[id_] for id_ in feature_ids}

        return pruned

    def _with(self, **components: Any) -> 'MicrobiomeExperiment':
        current = {
            'otu_table': self.otu_table,
            'sample_data': self.sample_data,
            'tax_table': self.tax_table,
            'phy_tree': self.phy_tree,
            'refseq': self.refseq,
        }
        return MicrobiomeExperiment(**(current | components))

    @property
    def n_samples(self) -> int:
        return self.otu_table.shape[1]

    @property
    def n_taxa(self) -> int:
        return self.otu_table.shape[0]

    @property
    def sample_names(self) -> list[str]:
        return list(self.otu_table.columns)

    @property
    def taxa_names(self) -> list[str]:
        return list(self.otu_table.index)

    def sample_sums(self) -> pd.Series:
        return self.otu_table.sum(axis=0)

    def taxa_sums(self) -> pd.Series:
        return self.otu_table.sum(axis=1)

    def relative_abundance(self) -> 'MicrobiomeExperiment':
        """Divide each count by its sample's total. Empty samples stay at zero."""
        totals = self.sample_sums().replace(0, nan)
        relative = self.otu_table.div(totals, axis=1).fillna(0.0)

        return self._with(otu_table=relative)

    def prune_taxa(self, taxa: Collection[str]) -> 'MicrobiomeExperiment':
        taxa = set(taxa)
        keep = [id_ for id_ in self.otu_table.index if id_ in taxa]
        return self._with(otu_table=self.otu_table.loc[keep])

    def prune_samples(self, samples: Collection[str]) -> 'MicrobiomeExperiment':
        samples = set(samples)
        keep = [id_ for id_ in self.otu_table.columns if id_ in samples]
        return self._with(otu_table=self.otu_table.loc[:, keep])

    def subset_samples(self, column: str, value: Any) -> 'MicrobiomeExperiment':
        """Keep the samples whose metadata `column` equals `value`"""
        if column not in self.sample_data.columns:
            raise KeyError(f'{column} is not a column of the sample metadata.')

        matches = self.sample_data.index[self.sample_data[column] == value]
        return self.prune_samples(matches)

    def filter_taxa(self, min_count: float) -> 'MicrobiomeExperiment':
        """Drop features whose total count across samples is below `min_count`"""
        taxa_sums = self.taxa_sums()
        return self.prune_taxa(taxa_sums.index[taxa_sums >= min_count])

    def tax_glom(self, rank: str) -> 'MicrobiomeExperiment':
        """
        Merge features that share a lineage down to `rank`, summing
        their counts. Features without an assignment at `rank` are
        dropped. The most abundant feature of each group represents the
        group in the taxonomy, tree and sequences.

        :param rank: The rank to agglomerate at, e.g. `Genus`
        :type rank: `str`
        :raises `ValueError`: If `rank` is not a known rank or no
        feature is assigned at it
        :return: The agglomerated experiment
        :rtype: `MicrobiomeExperiment`
        """
        rank = _validate_rank(rank)
        lineage_ranks = list(RANKS[: RANKS.index(rank) + 1])

        assigned = self.tax_table[rank].notna()
        tax_table = self.tax_table.loc[assigned, lineage_ranks]
        if tax_table.empty:
            raise ValueError(f'No features are assigned at the rank {rank}.')

        otu_table = self.otu_table.loc[tax_table.index]
        taxa_sums = otu_table.sum(axis=1)

        lineages = tax_table.fillna('').apply(TAXON_SEP.join, axis=1)
        representatives = {
            lineage: taxa_sums.loc[feature_ids].idxmax()
            for lineage, feature_ids in lineages.groupby(lineages, sort=False).groups.items()
        }

        glommed_counts = otu_table.groupby(lineages, sort=False).sum()
        glommed_counts.index = pd.Index(
            [representatives[lineage] for lineage in glommed_counts.index],
            name=self.otu_table.index.name,
        )

        glommed_taxonomy = self.tax_table.loc[glommed_counts.index].copy()
        for column in glommed_taxonomy.columns:
            if column not in lineage_ranks:
                glommed_taxonomy[column] = None

        return self._with(otu_table=glommed_counts, tax_table=glommed_taxonomy)
