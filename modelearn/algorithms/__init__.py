# Learning algorithms used by the mode learner
from .linear import FORWARD, OLS, RIDGE, linreg_clean, linreg_d
from .lwr import LWR
from .lda import LDA
from .foil import FOIL, Literal, test_clause_vec
from .subsets import find_linear_subset, find_linear_subset_block, find_linear_subset_em, split_data

__all__ = [
    "FORWARD",
    "OLS",
    "RIDGE",
    "linreg_clean",
    "linreg_d",
    "LWR",
    "LDA",
    "FOIL",
    "Literal",
    "test_clause_vec",
    "find_linear_subset",
    "find_linear_subset_block",
    "find_linear_subset_em",
    "split_data",
]
