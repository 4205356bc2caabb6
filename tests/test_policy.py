import pytest

from slimage.errors import PolicyError
from slimage.policy import Policy, ensure_build_policy, ensure_network_allowed


def test_policy_defaults_are_permissive() -> None:
    policy = Policy()
    assert policy.require_frozen_lock is False
    assert policy.network_mode == "online"
    assert policy.verify_linkage is True
    ensure_build_policy(policy=policy, frozen=False, pipeline="overmind")
    ensure_network_allowed(policy=policy, operation="apk_add")


def test_policy_requires_frozen_lock_for_build() -> None:
    policy = Policy(require_frozen_lock=True)
    with pytest.raises(PolicyError) as excinfo:
        ensure_build_policy(policy=policy, frozen=False, pipeline="overmind")
    assert excinfo.value.context == {"operation": "build", "pipeline": "overmind"}
    ensure_build_policy(policy=policy, frozen=True, pipeline="overmind")


def test_policy_network_offline_blocks_network_operations() -> None:
    with pytest.raises(PolicyError) as excinfo:
        ensure_network_allowed(policy=Policy(network_mode="offline"), operation="apk_add")
    assert excinfo.value.code == "E_POLICY"
