"""
Likelihood-free inference for the stochastic coral / crown-of-thorns
starfish (COTS) predator-prey model.
"""
from .version_info import VERSION as __version__  # noqa: F401
