"""Read-only query selectors."""

from distribution_kernel.selectors.base import BaseSelector
from distribution_kernel.selectors.distribution_selector import DistributionSelector

__all__ = ["BaseSelector", "DistributionSelector"]
