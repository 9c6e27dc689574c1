"""
Bottleneck injection package.

Named, parameterized synthetic workloads that requests can trigger to perturb
the service on purpose.
"""

from .scenarios import BottleneckInjector, Scenario, ScenarioReport, resolve_scenario

__all__ = ["BottleneckInjector", "Scenario", "ScenarioReport", "resolve_scenario"]
