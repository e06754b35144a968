"""
Pytest configuration and shared fixtures.
"""

import pytest
from typer.testing import CliRunner

from pruneml.io.sequences import Alignment
from pruneml.io.trees import Tree


THREE_TAXON_NEWICK = "((t1:0.1,t2:0.1):0.1,t3:0.1);"

FIVE_TAXON_NEWICK = "(((human:0.03,chimp:0.04):0.07,gorilla:0.09):0.05,(macaque:0.12,marmoset:0.15):0.02);"

FIVE_TAXON_SEQUENCES = {
    "human":    "ACGTACGTTAGCCGATAGCTAGGCTA",
    "chimp":    "ACGTACGTTAGCCGATAGCTAGGCTG",
    "gorilla":  "ACGTACGCTAGCCGATAGTTAGGCTA",
    "macaque":  "ACGAACGCTGGCCGATAGTTAGACTA",
    "marmoset": "ACGAACGCTGGTCGACAGTTAG-CTN",
}


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def three_taxon_tree():
    """Tree ((t1:0.1,t2:0.1):0.1,t3:0.1) with its hand-computed likelihoods."""
    return Tree.from_newick(THREE_TAXON_NEWICK)


@pytest.fixture
def five_taxon_tree():
    """Small primate tree."""
    return Tree.from_newick(FIVE_TAXON_NEWICK)


@pytest.fixture
def five_taxon_alignment():
    """Alignment matching ``five_taxon_tree`` with a gap and an N."""
    return Alignment.from_dict(FIVE_TAXON_SEQUENCES)


@pytest.fixture
def fasta_file(tmp_path):
    """FASTA file for the five-taxon alignment."""
    path = tmp_path / "primates.fasta"
    path.write_text(
        "".join(f">{name}\n{seq}\n" for name, seq in FIVE_TAXON_SEQUENCES.items())
    )
    return path


@pytest.fixture
def phylip_file(tmp_path):
    """Sequential PHYLIP file for the five-taxon alignment."""
    path = tmp_path / "primates.phy"
    n_sites = len(next(iter(FIVE_TAXON_SEQUENCES.values())))
    lines = [f"  {len(FIVE_TAXON_SEQUENCES)} {n_sites}"]
    lines.extend(f"{name:<10} {seq}" for name, seq in FIVE_TAXON_SEQUENCES.items())
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def tree_file(tmp_path):
    """Newick file for the five-taxon tree."""
    path = tmp_path / "primates.nwk"
    path.write_text(FIVE_TAXON_NEWICK + "\n")
    return path


@pytest.fixture
def five_taxon_sequences():
    """Raw sequences of the five-taxon alignment."""
    return dict(FIVE_TAXON_SEQUENCES)
