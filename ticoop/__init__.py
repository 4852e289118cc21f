"""
ticoop: branch-targeted constraint solving that cooperates with taint inference.
"""

from ticoop.coordinator import TICooperator
from ticoop.config import CoordinatorConfig
from ticoop.sites import TargetSite, TargetSiteRegistry

__all__ = ["TICooperator", "CoordinatorConfig", "TargetSite", "TargetSiteRegistry"]
