"""
Substitution models for phylogenetic likelihood calculation.

Every model implements ``transition_prob(i, j, v)`` and
``transition_matrix(v)`` and carries its own stationary frequencies:

- **JC69**: equal rates, equal frequencies
- **K80**: transition/transversion ratio kappa
- **F81**: equal rates, unequal frequencies
- **HKY85**: kappa with unequal frequencies
- **GTR**: six exchangeabilities with unequal frequencies

Models are chosen explicitly by the caller, by class or by name through
:func:`get_model`.
"""

from pruneml.models.base import SubstitutionModel
from pruneml.models.nucleotide import (
    F81,
    GTR,
    HKY85,
    JC69,
    K80,
    compute_nucleotide_frequencies,
)

MODELS = {
    'JC69': JC69,
    'K80': K80,
    'F81': F81,
    'HKY85': HKY85,
    'GTR': GTR,
}


def get_model(name: str, **params) -> SubstitutionModel:
    """
    Build a substitution model by name.

    Parameters
    ----------
    name : str
        Model name (case-insensitive): JC69, K80, F81, HKY85 or GTR
    **params
        Model parameters (``kappa``, ``rates``, ``frequencies``); None values
        are dropped so optional CLI options can be passed straight through

    Returns
    -------
    SubstitutionModel
        Model instance

    Raises
    ------
    ValueError
        If the name is unknown or a parameter does not apply to the model

    Examples
    --------
    >>> get_model("k80", kappa=4.0)
    K80(kappa=4.0)
    """
    registry = {key.upper(): cls for key, cls in MODELS.items()}
    cls = registry.get(name.upper())
    if cls is None:
        valid_models = ', '.join(MODELS)
        raise ValueError(f"Unknown model: '{name}'. Valid models are: {valid_models}")

    params = {key: value for key, value in params.items() if value is not None}
    try:
        return cls(**params)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for model {cls.name}: {e}") from None


__all__ = [
    "SubstitutionModel",
    "JC69",
    "K80",
    "F81",
    "HKY85",
    "GTR",
    "MODELS",
    "get_model",
    "compute_nucleotide_frequencies",
]
