"""
pytest fixtures that boot a local cluster around tests.

Registered through the ``pytest11`` entry point, so installing the package is
enough to use them. Override ``cluster_settings`` (or
``module_cluster_settings``) in a conftest to change the cluster:

    @pytest.fixture
    def cluster_settings():
        return ClusterRuleBuilder().with_task_slots(4).build_settings()

    def test_sum(cluster_rule):
        assert dask.bag.from_sequence([1, 2, 3, 4]).sum().compute() == 10

Teardown fails the test with a ShutdownFailure when workers leaked broadcast
variables or connections.
"""

from typing import Callable, Generator

import pytest

from services.cluster_harness_service import ClusterRule, ClusterSettings
from services.shared.exceptions import ShutdownFailure


@pytest.fixture
def cluster_settings() -> ClusterSettings:
    return ClusterSettings()


@pytest.fixture
def cluster_rule(cluster_settings: ClusterSettings) -> Generator[ClusterRule, None, None]:
    """A cluster started before and stopped after each test."""
    rule = ClusterRule(cluster_settings)
    rule.before()
    try:
        yield rule
    finally:
        rule.after()


@pytest.fixture(scope="module")
def module_cluster_settings() -> ClusterSettings:
    return ClusterSettings()


@pytest.fixture(scope="module")
def module_cluster_rule(
    module_cluster_settings: ClusterSettings,
) -> Generator[ClusterRule, None, None]:
    """A cluster shared by all tests of a module."""
    rule = ClusterRule(module_cluster_settings)
    rule.before()
    try:
        yield rule
    finally:
        rule.after()


@pytest.fixture
def cluster_rule_factory() -> Generator[
    Callable[[ClusterSettings | None], ClusterRule], None, None
]:
    """Start rules on demand; all of them are stopped after the test, newest first."""
    rules: list[ClusterRule] = []

    def _factory(settings: ClusterSettings | None = None) -> ClusterRule:
        rule = ClusterRule(settings)
        rule.before()
        rules.append(rule)
        return rule

    yield _factory

    first_error: ShutdownFailure | None = None
    for rule in reversed(rules):
        try:
            rule.after()
        except ShutdownFailure as e:
            first_error = first_error or e
    if first_error is not None:
        raise first_error
