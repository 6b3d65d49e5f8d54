"""Learning constants for the mode learner.

All values are fixed at import time.
"""

# Measurement variance for every continuous quantity reported by the scene.
MEASURE_VAR = 1.0e-8

# Lambda for ridge regression
RIDGE_LAMBDA = 1e-8

# Maximum acceptable average absolute error for a linear model
MODEL_ERROR_THRESH = 1e-5

# Forward selection stops adding columns once the error improves by less
# than this factor.
REFIT_MUL_THRESH = 1.0001

# Numbers closer than this are considered identical.
SAME_THRESH = 1e-15

# Probability that any instance is just noise
PNOISE = 0.0001

EPSILON = 0.001

# Noise instances required before trying to create a new mode out of them
NEW_MODE_THRESH = 200

# Fraction of a combined data set a unified mode has to explain
UNIFY_KEEP_RATIO = 0.9

# Modes with this many members or fewer are removed
MIN_MODE_SIZE = 2

FOIL_GROW_RATIO = 0.75
FOIL_MIN_SUCCESS_RATE = 0.9
FOIL_MAX_CLAUSE_LEN = 5

# Neighbours used for the fallback LWR prediction
LWR_K = 20

MINI_EM_MAX_ITERS = 50
LINEAR_SUBSET_MAX_ITERS = 50
LINEAR_SUBSET_TEST_RATIO = 0.5

EM_LDA_TRAIN_RATIO = 0.7

# Residual kernel for weighted subset search: w = min(MAX_WEIGHT, e ** KERNEL_POWER)
MAX_WEIGHT = 1.0e9
KERNEL_POWER = -3.0

PERSIST_SCHEMA_VERSION = 1
