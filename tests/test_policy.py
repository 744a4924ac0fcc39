"""Tests for throttle policies and environment overrides.

Covers:
- Built-in policy catalog values
- Policy validation
- Legacy and generic environment overrides
- Invalid override values are ignored
"""

import pytest

from throttle.policy import (
    DEFAULT_POLICIES,
    HOUR_MS,
    MINUTE_MS,
    Policy,
    apply_env_overrides,
)


class TestDefaultPolicies:
    """The built-in catalog covers every marketplace endpoint class."""

    def test_catalog_names(self) -> None:
        assert set(DEFAULT_POLICIES) == {
            "login",
            "api",
            "upload",
            "system_action",
            "sensitive_view",
            "admin_code_request",
            "admin_code_verify",
        }

    @pytest.mark.parametrize(
        "name,limit,window_ms",
        [
            ("login", 5, 15 * MINUTE_MS),
            ("api", 100, MINUTE_MS),
            ("upload", 10, MINUTE_MS),
            ("system_action", 5, MINUTE_MS),
            ("sensitive_view", 1, 2 * MINUTE_MS),
            ("admin_code_request", 6, HOUR_MS),
            ("admin_code_verify", 20, HOUR_MS),
        ],
    )
    def test_defaults(self, name: str, limit: int, window_ms: int) -> None:
        policy = DEFAULT_POLICIES[name]
        assert policy.limit == limit
        assert policy.window_duration_ms == window_ms

    def test_only_sensitive_view_has_admin_bypass(self) -> None:
        bypass = [p.name for p in DEFAULT_POLICIES.values() if p.admin_bypass]
        assert bypass == ["sensitive_view"]
        assert DEFAULT_POLICIES["sensitive_view"].admin_limit == 1000

    def test_key_prefixes_are_unique(self) -> None:
        prefixes = [p.key_prefix for p in DEFAULT_POLICIES.values()]
        assert len(prefixes) == len(set(prefixes))

    def test_admin_code_verify_emits_no_headers(self) -> None:
        assert DEFAULT_POLICIES["admin_code_verify"].emit_headers is False


class TestPolicyValidation:
    def test_rejects_zero_limit(self) -> None:
        with pytest.raises(ValueError, match="limit"):
            Policy(name="p", window_duration_ms=1000, limit=0, key_prefix="p")

    def test_rejects_zero_window(self) -> None:
        with pytest.raises(ValueError, match="window"):
            Policy(name="p", window_duration_ms=0, limit=1, key_prefix="p")

    def test_rejects_empty_prefix(self) -> None:
        with pytest.raises(ValueError, match="key_prefix"):
            Policy(name="p", window_duration_ms=1000, limit=1, key_prefix="")

    def test_bypass_requires_admin_limit(self) -> None:
        with pytest.raises(ValueError, match="admin_limit"):
            Policy(
                name="p",
                window_duration_ms=1000,
                limit=1,
                key_prefix="p",
                admin_bypass=True,
            )

    def test_admin_limit_below_limit_rejected(self) -> None:
        with pytest.raises(ValueError, match="admin_limit"):
            Policy(
                name="p",
                window_duration_ms=1000,
                limit=10,
                key_prefix="p",
                admin_bypass=True,
                admin_limit=5,
            )

    def test_to_dict(self) -> None:
        data = DEFAULT_POLICIES["login"].to_dict()
        assert data["name"] == "login"
        assert data["key_prefix"] == "vendor_login"


class TestEnvOverrides:
    def test_no_env_returns_equal_policies(self) -> None:
        assert apply_env_overrides(DEFAULT_POLICIES, {}) == DEFAULT_POLICIES

    def test_legacy_variable(self) -> None:
        result = apply_env_overrides(
            DEFAULT_POLICIES, {"VENDOR_LOGIN_MAX_ATTEMPTS": "3"}
        )
        assert result["login"].limit == 3
        assert result["api"].limit == 100

    def test_generic_form_wins_over_legacy(self) -> None:
        result = apply_env_overrides(
            DEFAULT_POLICIES,
            {"VENDOR_API_MAX_REQUESTS": "50", "THROTTLE_API_LIMIT": "70"},
        )
        assert result["api"].limit == 70

    def test_window_and_admin_limit(self) -> None:
        result = apply_env_overrides(
            DEFAULT_POLICIES,
            {
                "THROTTLE_SENSITIVE_VIEW_WINDOW_MS": "30000",
                "THROTTLE_SENSITIVE_VIEW_ADMIN_LIMIT": "50",
            },
        )
        assert result["sensitive_view"].window_duration_ms == 30000
        assert result["sensitive_view"].admin_limit == 50

    def test_custom_policy_generic_form(self) -> None:
        custom = Policy(name="reports", window_duration_ms=1000, limit=3, key_prefix="r")
        result = apply_env_overrides({"reports": custom}, {"THROTTLE_REPORTS_LIMIT": "9"})
        assert result["reports"].limit == 9

    @pytest.mark.parametrize("value", ["abc", "0", "-4", "  "])
    def test_invalid_values_ignored(self, value: str) -> None:
        result = apply_env_overrides(
            DEFAULT_POLICIES, {"VENDOR_LOGIN_MAX_ATTEMPTS": value}
        )
        assert result["login"].limit == 5

    def test_override_breaking_invariant_is_ignored(self) -> None:
        # admin_limit below the base limit would make the policy invalid.
        result = apply_env_overrides(
            DEFAULT_POLICIES,
            {"THROTTLE_SENSITIVE_VIEW_LIMIT": "10", "THROTTLE_SENSITIVE_VIEW_ADMIN_LIMIT": "5"},
        )
        assert result["sensitive_view"] == DEFAULT_POLICIES["sensitive_view"]

    def test_does_not_mutate_input(self) -> None:
        before = dict(DEFAULT_POLICIES)
        apply_env_overrides(DEFAULT_POLICIES, {"THROTTLE_LOGIN_LIMIT": "1"})
        assert DEFAULT_POLICIES == before
