"""
Sequence file parsing and alignment handling.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping

from ..exceptions import PrunemlError, SequenceLengthMismatchError


@dataclass(frozen=True)
class Alignment:
    """
    Multiple sequence alignment.

    Sequences are kept as upper-case character strings; turning characters
    into per-state likelihood vectors is the job of
    :class:`pruneml.core.encoding.AlignmentEncoder`.

    Attributes
    ----------
    names : tuple[str, ...]
        Sequence names/labels
    sequences : tuple[str, ...]
        Aligned sequences, one per name, all of the same length

    Raises
    ------
    SequenceLengthMismatchError
        If the sequences differ in length
    PrunemlError
        If names are duplicated or do not pair up with sequences
    """

    names: tuple[str, ...]
    sequences: tuple[str, ...]

    def __post_init__(self):
        names = tuple(self.names)
        sequences = tuple(re.sub(r'\s', '', seq).upper() for seq in self.sequences)
        object.__setattr__(self, 'names', names)
        object.__setattr__(self, 'sequences', sequences)

        if len(names) != len(sequences):
            raise PrunemlError(
                f"Got {len(names)} names but {len(sequences)} sequences"
            )
        if not names:
            raise PrunemlError("Alignment has no sequences")
        if len(set(names)) != len(names):
            duplicates = sorted({name for name in names if names.count(name) > 1})
            raise PrunemlError(f"Duplicate sequence names: {duplicates}")

        expected = len(sequences[0])
        for name, seq in zip(names, sequences):
            if len(seq) != expected:
                raise SequenceLengthMismatchError(
                    f"Sequence {name} has length {len(seq)}, expected {expected} "
                    f"(length of {names[0]})"
                )

    @property
    def n_species(self) -> int:
        return len(self.names)

    @property
    def n_sites(self) -> int:
        return len(self.sequences[0])

    @classmethod
    def from_dict(cls, sequences: Mapping[str, str]) -> "Alignment":
        """
        Build an alignment from a name -> sequence mapping.

        Examples
        --------
        >>> aln = Alignment.from_dict({"t1": "ACGT", "t2": "ACGA"})
        >>> aln.n_sites
        4
        """
        return cls(names=tuple(sequences), sequences=tuple(sequences.values()))

    @classmethod
    def from_phylip(cls, filepath: Path | str) -> "Alignment":
        """
        Parse sequential PHYLIP format alignment file.

        The first line contains n_sequences and sequence_length. Each record
        is either ``name sequence`` on one line, or a name line followed by
        sequence lines (PAML style).

        Parameters
        ----------
        filepath : Path or str
            Path to PHYLIP format file

        Returns
        -------
        Alignment
            Parsed alignment
        """
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            lines = [line.rstrip() for line in f.readlines()]

        lines = [line for line in lines if line.strip()]
        if not lines:
            raise PrunemlError(f"PHYLIP file {filepath} is empty")

        header = lines[0].strip().split()
        try:
            n_species = int(header[0])
            n_chars = int(header[1])
        except (IndexError, ValueError):
            raise PrunemlError(
                f"Invalid PHYLIP header: '{lines[0].strip()}'"
            ) from None

        names = []
        sequences_raw = []

        i = 1
        while i < len(lines) and len(names) < n_species:
            fields = lines[i].strip().split(None, 1)
            i += 1
            names.append(fields[0])
            seq_data = re.sub(r'\s', '', fields[1]) if len(fields) > 1 else ""

            # Collect continuation lines until the sequence is complete
            while len(seq_data) < n_chars and i < len(lines):
                seq_data += re.sub(r'\s', '', lines[i])
                i += 1

            sequences_raw.append(seq_data)

        if len(names) != n_species:
            raise PrunemlError(f"Expected {n_species} sequences, found {len(names)}")

        for name, seq in zip(names, sequences_raw):
            if len(seq) != n_chars:
                raise SequenceLengthMismatchError(
                    f"Sequence {name} has length {len(seq)}, expected {n_chars}"
                )

        return cls(names=tuple(names), sequences=tuple(sequences_raw))

    @classmethod
    def from_fasta(cls, filepath: Path | str) -> "Alignment":
        """
        Parse FASTA format alignment file.

        Parameters
        ----------
        filepath : Path or str
            Path to FASTA format file

        Returns
        -------
        Alignment
            Parsed alignment

        Examples
        --------
        >>> aln = Alignment.from_fasta("alignment.fasta")
        """
        filepath = Path(filepath)

        names = []
        sequences_raw = []

        with open(filepath, 'r') as f:
            current_name = None
            current_seq = []

            for line in f:
                line = line.strip()

                if not line:
                    continue

                if line.startswith('>'):
                    if current_name is not None:
                        names.append(current_name)
                        sequences_raw.append(''.join(current_seq))

                    current_name = line[1:].strip()
                    current_seq = []
                else:
                    if current_name is None:
                        raise PrunemlError(
                            f"FASTA file {filepath} has sequence data before the first header"
                        )
                    current_seq.append(line)

            if current_name is not None:
                names.append(current_name)
                sequences_raw.append(''.join(current_seq))

        if not names:
            raise PrunemlError("No sequences found in FASTA file")

        return cls(names=tuple(names), sequences=tuple(sequences_raw))

    def sequence(self, name: str) -> str:
        """Sequence for taxon ``name``."""
        try:
            return self.sequences[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def column(self, site: int) -> dict[str, str]:
        """
        Characters observed at one site.

        Parameters
        ----------
        site : int
            Zero-based site index

        Returns
        -------
        dict[str, str]
            Taxon name -> character
        """
        if not 0 <= site < self.n_sites:
            raise IndexError(f"Site {site} out of range for {self.n_sites} sites")
        return {name: seq[site] for name, seq in zip(self.names, self.sequences)}

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(zip(self.names, self.sequences))

    def to_phylip(self, filepath: Path | str) -> None:
        """
        Write alignment to sequential PHYLIP format file.

        Parameters
        ----------
        filepath : Path or str
            Output file path
        """
        filepath = Path(filepath)

        with open(filepath, 'w') as f:
            f.write(f" {self.n_species}   {self.n_sites}\n\n")

            for name, seq in zip(self.names, self.sequences):
                f.write(f"{name}\n")

                # Write in blocks of 60
                for i in range(0, len(seq), 60):
                    f.write(seq[i:i+60] + '\n')

                f.write('\n')

    def to_fasta(self, filepath: Path | str) -> None:
        """
        Write alignment to FASTA format file.

        Parameters
        ----------
        filepath : Path or str
            Output file path
        """
        filepath = Path(filepath)

        with open(filepath, 'w') as f:
            for name, seq in zip(self.names, self.sequences):
                f.write(f">{name}\n")

                for i in range(0, len(seq), 60):
                    f.write(seq[i:i+60] + '\n')

    def __repr__(self) -> str:
        return f"Alignment(n_species={self.n_species}, n_sites={self.n_sites})"
