"""
Constants used by pyNILS estimation.
"""

import math

# Area of a single tract in the units plot values are expressed per.
# Values are divided by this when plots are accumulated into tracts.
DEFAULT_TRACT_AREA = 196 * 100 * math.pi

# Leaf size of the balancing-space KD-tree
DEFAULT_LEAF_SIZE = 30

# Two-sided normal quantiles for confidence intervals
Z_SCORE_90 = 1.645
Z_SCORE_95 = 1.96
Z_SCORE_99 = 2.576
