"""Root conftest.py: project root on sys.path plus shared synthetic data fixtures."""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture
def mapping_table():
    """Ten genes with all three identifiers, one without an Entrez ID."""
    rows = [(f"ENSG{i:011d}", str(1000 + i), f"GENE{i}") for i in range(10)]
    rows.append(("ENSG00000000099", None, "ORPHAN"))
    return pd.DataFrame(rows, columns=['ensembl', 'entrez', 'symbol'])


@pytest.fixture
def cohorts():
    """
    Reference cohort (38 samples) nested in a full cohort (500 samples), 40
    genes. Genes 0-9 share a latent factor so a pathway over them has a
    clear first component.
    """
    rng = np.random.RandomState(7)
    n_genes, n_full = 40, 500
    latent = rng.normal(size=n_full)
    data = rng.normal(scale=0.5, size=(n_genes, n_full))
    data[:10] += np.outer(rng.uniform(0.8, 1.5, 10), latent)
    data += 8.0
    genes = [f"ENSG{i:011d}" for i in range(n_genes)]
    samples = [f"LINE{i}" for i in range(n_full)]
    full = pd.DataFrame(data, index=genes, columns=samples)
    reference = full.iloc[:, :38].copy()
    return reference, full
