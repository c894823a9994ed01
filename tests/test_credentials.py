"""Tests for the credential store."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.usage_engine.credentials import (
    CredentialStore,
    expand_path,
    load_credentials,
    plan_tier_from_subscription,
)
from src.usage_engine.errors import InvalidCredentials, NoCredentials
from src.usage_engine.models import PlanTier


class TestLoadCredentials:
    def test_max_plan(self, write_credentials) -> None:
        path = write_credentials(token="abc", sub="max_5x")
        creds = load_credentials(path)
        assert creds.bearer_token == "abc"
        assert creds.plan_tier == PlanTier.MAX
        assert creds.source_path == path

    def test_pro_plan(self, write_credentials) -> None:
        creds = load_credentials(write_credentials(sub="pro"))
        assert creds.plan_tier == PlanTier.PRO

    def test_missing_subscription_is_unknown(self, write_credentials) -> None:
        creds = load_credentials(write_credentials(sub=None))
        assert creds.plan_tier == PlanTier.UNKNOWN

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(NoCredentials):
            load_credentials(tmp_path / "nope.json")

    def test_missing_oauth_object(self, write_credentials) -> None:
        path = write_credentials({"somethingElse": {}})
        with pytest.raises(InvalidCredentials, match="OAuth"):
            load_credentials(path)

    def test_empty_token(self, write_credentials) -> None:
        with pytest.raises(InvalidCredentials, match="access token"):
            load_credentials(write_credentials(token=""))

    def test_non_string_token(self, write_credentials) -> None:
        path = write_credentials({"claudeAiOauth": {"accessToken": 123}})
        with pytest.raises(InvalidCredentials):
            load_credentials(path)

    def test_not_json(self, write_credentials) -> None:
        with pytest.raises(InvalidCredentials, match="JSON"):
            load_credentials(write_credentials(raw="{not json"))

    def test_invalid_utf8(self, write_credentials) -> None:
        path = write_credentials()
        path.write_bytes(b"\xff\xfe garbage")
        with pytest.raises(InvalidCredentials, match="UTF-8"):
            load_credentials(path)

    def test_invalid_utf8_inside_token(self, write_credentials) -> None:
        path = write_credentials()
        path.write_bytes(b'{"claudeAiOauth": {"accessToken": "ab\xffc"}}')
        with pytest.raises(InvalidCredentials):
            load_credentials(path)

    def test_json_array(self, write_credentials) -> None:
        with pytest.raises(InvalidCredentials):
            load_credentials(write_credentials(raw="[1, 2]"))

    def test_repr_hides_token(self, write_credentials) -> None:
        creds = load_credentials(write_credentials(token="super-secret"))
        assert "super-secret" not in repr(creds)


class TestPlanTier:
    @pytest.mark.parametrize(
        ("raw", "tier"),
        [
            ("max", PlanTier.MAX),
            ("MAX_20x", PlanTier.MAX),
            ("claude_pro", PlanTier.PRO),
            ("Pro", PlanTier.PRO),
            ("team", PlanTier.UNKNOWN),
            ("", PlanTier.UNKNOWN),
            (None, PlanTier.UNKNOWN),
        ],
    )
    def test_mapping(self, raw, tier) -> None:
        assert plan_tier_from_subscription(raw) == tier


class TestExpandPath:
    def test_tilde(self) -> None:
        expanded = expand_path("~/test/path")
        assert not str(expanded).startswith("~")
        assert str(expanded).endswith("test/path")

    def test_absolute(self) -> None:
        assert expand_path("/absolute/path") == Path("/absolute/path")


class TestCredentialStore:
    def test_ensure_loaded_caches(self, write_credentials) -> None:
        path = write_credentials(token="first")
        store = CredentialStore(path)
        assert store.ensure_loaded().bearer_token == "first"

        write_credentials(token="second")
        assert store.ensure_loaded().bearer_token == "first"

    def test_invalidate_forces_reload(self, write_credentials) -> None:
        path = write_credentials(token="first")
        store = CredentialStore(path)
        store.ensure_loaded()

        write_credentials(token="second")
        store.invalidate()
        assert store.credentials is None
        assert store.ensure_loaded().bearer_token == "second"

    def test_invalidate_keeps_file(self, write_credentials) -> None:
        path = write_credentials()
        store = CredentialStore(path)
        store.load()
        store.invalidate()
        assert path.exists()

    def test_reload(self, write_credentials) -> None:
        path = write_credentials(token="first")
        store = CredentialStore(path)
        store.load()
        write_credentials(token="second")
        assert store.reload().bearer_token == "second"

    def test_failed_load_clears_cache(self, write_credentials) -> None:
        path = write_credentials()
        store = CredentialStore(path)
        store.load()
        path.unlink()
        with pytest.raises(NoCredentials):
            store.reload()
        assert store.credentials is None
        assert store.plan_tier == PlanTier.UNKNOWN

    def test_set_path(self, write_credentials, tmp_path: Path) -> None:
        store = CredentialStore(write_credentials(token="first"))
        store.load()

        other = tmp_path / "other.json"
        other.write_text('{"claudeAiOauth": {"accessToken": "other", "subscriptionType": "pro"}}')
        store.set_path(other)
        assert store.credentials is None
        assert store.ensure_loaded().bearer_token == "other"
        assert store.plan_tier == PlanTier.PRO
