"""
Unit Tests for Identifier Mapping
=================================
"""

import pandas as pd
import pytest

from dasmeta.id_mapping import IdentifierMapper


class TestIdentifierMapper:
    """Lookup between ensembl / entrez / symbol namespaces"""

    def test_one_to_one(self, mapping_table):
        mapper = IdentifierMapper(mapping_table)
        df = mapper.map_ids(['1000', '1003'], 'entrez', 'ensembl')
        assert list(df.columns) == ['entrez', 'ensembl']
        assert list(df['ensembl']) == ['ENSG00000000000', 'ENSG00000000003']

    def test_unmapped_dropped_silently(self, mapping_table):
        mapper = IdentifierMapper(mapping_table)
        translated = mapper.translate(['1001', '999999', '1002'], 'entrez', 'symbol')
        assert translated == ['GENE1', 'GENE2']
        assert mapper.unmapped(['1001', '999999'], 'entrez', 'symbol') == ['999999']

    def test_missing_cell_not_mapped(self, mapping_table):
        """ORPHAN has no Entrez ID, so it cannot be reached from entrez"""
        mapper = IdentifierMapper(mapping_table)
        assert mapper.translate(['ORPHAN'], 'symbol', 'entrez') == []
        assert mapper.translate(['ORPHAN'], 'symbol', 'ensembl') == ['ENSG00000000099']

    def test_one_to_many(self):
        table = pd.DataFrame({
            'ensembl': ['ENSG1', 'ENSG2', 'ENSG3'],
            'entrez': ['10', '10', '11'],
            'symbol': ['A', 'A', 'B'],
        })
        mapper = IdentifierMapper(table)
        df = mapper.map_ids(['10'], 'entrez', 'ensembl')
        assert list(df['ensembl']) == ['ENSG1', 'ENSG2']

    def test_translate_deduplicates_in_order(self):
        table = pd.DataFrame({
            'ensembl': ['ENSG1', 'ENSG1', 'ENSG2'],
            'entrez': ['10', '12', '11'],
            'symbol': ['A', 'A2', 'B'],
        })
        mapper = IdentifierMapper(table)
        assert mapper.translate(['11', '10', '12'], 'entrez', 'ensembl') == ['ENSG2', 'ENSG1']

    def test_identifier_normalisation(self):
        """Version suffixes and float-formatted Entrez IDs are normalised"""
        table = pd.DataFrame({
            'ensembl': ['ENSG00000141510.16'],
            'entrez': [7157.0],
            'symbol': ['TP53'],
        })
        mapper = IdentifierMapper(table)
        assert mapper.translate(['7157'], 'entrez', 'ensembl') == ['ENSG00000141510']
        assert mapper.translate(['ENSG00000141510.3'], 'ensembl', 'symbol') == ['TP53']

    def test_unknown_namespace(self, mapping_table):
        mapper = IdentifierMapper(mapping_table)
        with pytest.raises(ValueError):
            mapper.map_ids(['1000'], 'entrez', 'uniprot')

    def test_missing_columns(self):
        with pytest.raises(ValueError):
            IdentifierMapper(pd.DataFrame({'ensembl': ['ENSG1']}))

    def test_from_csv(self, tmp_path):
        path = tmp_path / "biomart.csv"
        pd.DataFrame({
            'ensembl_gene_id': ['ENSG1', 'ENSG2'],
            'entrezgene_id': ['1', '2'],
            'hgnc_symbol': ['A', 'B'],
        }).to_csv(path, index=False)
        mapper = IdentifierMapper.from_csv(path)
        assert len(mapper) == 2
        assert mapper.translate(['B'], 'symbol', 'ensembl') == ['ENSG2']

    def test_from_csv_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IdentifierMapper.from_csv(tmp_path / "nope.csv")
