"""
Unit tests for CLI commands.
"""

import json

import pytest

from pruneml.cli.commands.loglik import parse_float_list, parse_frequencies
from pruneml.cli.main import app


class TestCLIHelp:
    """Test help messages and basic CLI functionality."""

    def test_main_help(self, cli_runner):
        """Test main CLI help message."""
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "loglik" in result.stdout
        assert "models" in result.stdout

    def test_loglik_help(self, cli_runner):
        """Test 'loglik' command help message."""
        result = cli_runner.invoke(app, ["loglik", "--help"])
        assert result.exit_code == 0
        assert "--alignment" in result.stdout
        assert "--tree" in result.stdout
        assert "--freqs" in result.stdout

    def test_models(self, cli_runner):
        """Test that every model is listed."""
        result = cli_runner.invoke(app, ["models"])
        assert result.exit_code == 0
        for name in ("JC69", "K80", "F81", "HKY85", "GTR"):
            assert name in result.stdout


class TestCLILoglik:
    """Test 'loglik' command functionality."""

    def test_text_output(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "--quiet",
        ])

        assert result.exit_code == 0
        assert "MODEL: JC69" in result.stdout
        assert "Log-likelihood:" in result.stdout

    def test_model_case_insensitive(self, cli_runner, phylip_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(phylip_file),
            "-t", str(tree_file),
            "-m", "hky85",
            "--kappa", "3",
            "--freqs", "empirical",
            "--quiet",
        ])

        assert result.exit_code == 0
        assert "MODEL: HKY85" in result.stdout
        assert "kappa = 3.0000" in result.stdout
        assert "root frequencies (empirical)" in result.stdout

    def test_sites_table(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "--sites",
            "--quiet",
        ])

        assert result.exit_code == 0
        assert "SITES:" in result.stdout
        assert "  26  " in result.stdout

    def test_json_output_file(self, cli_runner, fasta_file, tree_file, tmp_path):
        output_file = tmp_path / "result.json"

        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "-m", "GTR",
            "--rates", "1,2,1,1,2,1",
            "--freqs", "0.3,0.2,0.2,0.3",
            "--workers", "2",
            "--format", "json",
            "--output", str(output_file),
            "--quiet",
        ])

        assert result.exit_code == 0
        with open(output_file) as f:
            data = json.load(f)
        assert data["model_name"] == "GTR"
        assert data["params"]["rates"] == [1.0, 2.0, 1.0, 1.0, 2.0, 1.0]
        assert data["frequencies"] == pytest.approx([0.3, 0.2, 0.2, 0.3])
        assert data["n_sites"] == 26
        assert data["lnL"] == pytest.approx(sum(data["site_lnL"]))

    def test_json_stdout(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "-m", "K80",
            "--format", "json",
            "--quiet",
        ])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["model_name"] == "K80"

    def test_no_scaling_same_result(self, cli_runner, fasta_file, tree_file):
        outputs = []
        for extra in ([], ["--no-scaling"]):
            result = cli_runner.invoke(app, [
                "loglik", "-s", str(fasta_file), "-t", str(tree_file),
                "--format", "json", "--quiet", *extra,
            ])
            assert result.exit_code == 0
            outputs.append(json.loads(result.stdout)["lnL"])
        assert outputs[0] == pytest.approx(outputs[1])

    def test_kappa_wrong_model(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "--kappa", "2",
            "--quiet",
        ])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_bad_rates(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "-m", "GTR",
            "--rates", "1,2,3",
            "--quiet",
        ])

        assert result.exit_code == 1

    def test_empirical_frequencies_absent_base(self, cli_runner, tmp_path):
        alignment_file = tmp_path / "no_t.fasta"
        alignment_file.write_text(">t1\nAAC\n>t2\nACA\n>t3\nAAG\n")
        tree_file = tmp_path / "three.nwk"
        tree_file.write_text("((t1:0.1,t2:0.1):0.1,t3:0.1);\n")

        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(alignment_file),
            "-t", str(tree_file),
            "-m", "HKY85",
            "--freqs", "empirical",
            "--quiet",
        ])

        assert result.exit_code == 1
        assert "Empirical frequencies" in result.output

    def test_taxa_mismatch(self, cli_runner, fasta_file, tmp_path):
        tree_file = tmp_path / "other.nwk"
        tree_file.write_text("((human:0.1,chimp:0.1):0.1,orangutan:0.2);\n")

        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "--quiet",
        ])

        assert result.exit_code == 1
        assert "orangutan" in result.output

    def test_malformed_tree(self, cli_runner, fasta_file, tmp_path):
        tree_file = tmp_path / "bad.nwk"
        tree_file.write_text("((human,chimp),gorilla\n")

        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "--quiet",
        ])

        assert result.exit_code == 1
        assert "Could not load tree" in result.output

    def test_missing_alignment(self, cli_runner, tree_file):
        """Test that a nonexistent file is rejected by argument parsing."""
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", "/nonexistent/file.fasta",
            "-t", str(tree_file),
        ])

        assert result.exit_code != 0

    def test_unknown_model(self, cli_runner, fasta_file, tree_file):
        result = cli_runner.invoke(app, [
            "loglik",
            "-s", str(fasta_file),
            "-t", str(tree_file),
            "-m", "WAG",
        ])

        assert result.exit_code != 0


class TestOptionParsing:
    """Test parsing of list-valued options."""

    def test_float_list(self):
        assert parse_float_list("1, 2,3", 3, "--rates") == [1.0, 2.0, 3.0]

    def test_float_list_count(self):
        with pytest.raises(ValueError, match="needs 6 values"):
            parse_float_list("1,2", 6, "--rates")

    def test_float_list_not_numbers(self):
        with pytest.raises(ValueError, match="comma-separated"):
            parse_float_list("a,b", 2, "--rates")

    def test_frequencies(self):
        assert parse_frequencies("Empirical") == "empirical"
        assert parse_frequencies("0.1,0.2,0.3,0.4") == [0.1, 0.2, 0.3, 0.4]
