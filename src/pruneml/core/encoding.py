"""
Encoding of observed tip characters as conditional likelihood vectors.

An unambiguous character gives a one-hot vector at its state. Missing data and
fully ambiguous characters give the all-ones vector (the tip carries no
information). IUPAC partial ambiguity codes give ones on every compatible
state.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

import numpy as np

from ..exceptions import UnknownCharacterError
from ..io.sequences import Alignment


@dataclass(frozen=True, eq=False)
class Alphabet:
    """
    Finite state alphabet with ambiguity codes.

    Attributes
    ----------
    states : str
        One character per state, in state-index order
    ambiguity : Mapping[str, str]
        Ambiguity symbol -> the states it is compatible with. Earlier entries
        win when decoding a vector back to a symbol.
    aliases : Mapping[str, str]
        Extra symbols read as a single state (e.g. U for T)
    """

    states: str
    ambiguity: Mapping[str, str] = field(default_factory=dict)
    aliases: Mapping[str, str] = field(default_factory=dict)

    @property
    def n_states(self) -> int:
        return len(self.states)

    def index(self, state) -> int:
        """
        State index for a state character or an integer index.

        Raises
        ------
        UnknownCharacterError
            If ``state`` is not a state of the alphabet
        """
        if isinstance(state, (int, np.integer)):
            if not 0 <= state < self.n_states:
                raise UnknownCharacterError(
                    f"State index {state} out of range for {self.n_states} states"
                )
            return int(state)
        char = str(state).upper()
        char = self.aliases.get(char, char)
        if len(char) != 1 or char not in self.states:
            raise UnknownCharacterError(
                f"'{state}' is not a state of alphabet '{self.states}'"
            )
        return self.states.index(char)


DNA = Alphabet(
    states="ACGT",
    ambiguity={
        'N': "ACGT", '-': "ACGT", '?': "ACGT", 'X': "ACGT", '.': "ACGT",
        'R': "AG", 'Y': "CT", 'S': "CG", 'W': "AT", 'K': "GT", 'M': "AC",
        'B': "CGT", 'D': "AGT", 'H': "ACT", 'V': "ACG",
    },
    aliases={'U': 'T'},
)


class AlignmentEncoder:
    """
    Convert alignment characters into per-state likelihood vectors.

    Parameters
    ----------
    alphabet : Alphabet
        State alphabet (default: :data:`DNA`)

    Examples
    --------
    >>> encoder = AlignmentEncoder()
    >>> encoder.encode_char("G")
    array([0., 0., 1., 0.])
    >>> encoder.encode_char("-")
    array([1., 1., 1., 1.])
    """

    def __init__(self, alphabet: Alphabet = DNA):
        self.alphabet = alphabet
        k = alphabet.n_states

        symbols = {}
        for i, state in enumerate(alphabet.states):
            symbols[state] = [i]
        for alias, state in alphabet.aliases.items():
            symbols[alias] = [alphabet.index(state)]
        for code, compatible in alphabet.ambiguity.items():
            symbols[code] = [alphabet.index(s) for s in compatible]

        # Row r of _table is the vector for symbol _symbols[r]
        self._symbol_row: dict[str, int] = {}
        rows = []
        for row, (symbol, indices) in enumerate(symbols.items()):
            vector = np.zeros(k)
            vector[indices] = 1.0
            rows.append(vector)
            self._symbol_row[symbol] = row
            self._symbol_row.setdefault(symbol.lower(), row)
        self._table = np.array(rows)
        self._table.setflags(write=False)

        self._decode_table: dict[tuple[int, ...], str] = {}
        for symbol, indices in symbols.items():
            self._decode_table.setdefault(tuple(sorted(indices)), symbol)

    @property
    def n_states(self) -> int:
        return self.alphabet.n_states

    def encode_char(
        self, char: str, taxon: Optional[str] = None, site: Optional[int] = None
    ) -> np.ndarray:
        """
        Likelihood vector for a single character.

        The returned array is read-only and shared between calls.

        Raises
        ------
        UnknownCharacterError
            If ``char`` is neither a state nor an ambiguity code
        """
        try:
            return self._table[self._symbol_row[char]]
        except KeyError:
            raise UnknownCharacterError(_unknown_message(char, taxon, site)) from None

    def encode_site(self, alignment: Alignment, site_index: int) -> dict[str, np.ndarray]:
        """
        Encode one alignment column.

        Parameters
        ----------
        alignment : Alignment
            Source alignment
        site_index : int
            Zero-based column index

        Returns
        -------
        dict[str, np.ndarray]
            Taxon name -> vector of length ``n_states``
        """
        return {
            name: self.encode_char(char, taxon=name, site=site_index)
            for name, char in alignment.column(site_index).items()
        }

    def encode_alignment(
        self, alignment: Alignment, taxa: Optional[Iterable[str]] = None
    ) -> dict[str, np.ndarray]:
        """
        Encode every site of every (or the selected) taxon at once.

        Returns
        -------
        dict[str, np.ndarray]
            Taxon name -> array of shape (n_sites, n_states)
        """
        wanted = alignment.names if taxa is None else tuple(taxa)
        encoded = {}
        for name in wanted:
            seq = alignment.sequence(name)
            rows = np.empty(len(seq), dtype=np.intp)
            for site, char in enumerate(seq):
                row = self._symbol_row.get(char)
                if row is None:
                    raise UnknownCharacterError(_unknown_message(char, name, site))
                rows[site] = row
            encoded[name] = self._table[rows]
        return encoded

    def validate(self, alignment: Alignment) -> None:
        """
        Check that every character of ``alignment`` can be encoded.

        Raises
        ------
        UnknownCharacterError
            Naming the first offending taxon, site and character
        """
        known = set(self._symbol_row)
        for name, seq in alignment:
            unknown = set(seq) - known
            if unknown:
                site = min(seq.index(c) for c in unknown)
                raise UnknownCharacterError(_unknown_message(seq[site], name, site))

    def decode(self, vector) -> str:
        """
        Symbol for a 0/1 likelihood vector.

        A one-hot vector decodes to the state at its argmax; vectors with
        several ones decode to the matching ambiguity code.

        Raises
        ------
        ValueError
            If the vector is not a 0/1 vector of the alphabet's size, or no
            symbol matches
        """
        vector = np.asarray(vector, dtype=float)
        if vector.shape != (self.n_states,):
            raise ValueError(
                f"Expected a vector of length {self.n_states}, got shape {vector.shape}"
            )
        if not np.all((vector == 0.0) | (vector == 1.0)):
            raise ValueError(f"Cannot decode non-indicator vector {vector}")
        if vector.sum() == 1.0:
            return self.alphabet.states[int(np.argmax(vector))]
        key = tuple(int(i) for i in np.flatnonzero(vector))
        try:
            return self._decode_table[key]
        except KeyError:
            raise ValueError(f"No symbol encodes vector {vector}") from None


def _unknown_message(char: str, taxon: Optional[str], site: Optional[int]) -> str:
    where = []
    if taxon is not None:
        where.append(f"taxon '{taxon}'")
    if site is not None:
        where.append(f"site {site}")
    location = f" at {', '.join(where)}" if where else ""
    return f"Unknown character '{char}'{location}: not a state or ambiguity code"
