"""Tests for auth module."""

import pytest
from loaderkit.auth.offline import OfflineAuthenticator, offline_uuid
from loaderkit.core.arguments import RuntimeOptions


@pytest.mark.asyncio
async def test_offline_auth():
    """Test offline authentication."""
    profile = await OfflineAuthenticator.authenticate("testuser")
    assert profile["name"] == "testuser"
    assert profile["type"] == "offline"
    assert profile["id"] == offline_uuid("testuser")


@pytest.mark.asyncio
async def test_offline_auth_rejects_long_names():
    with pytest.raises(ValueError):
        await OfflineAuthenticator.authenticate("x" * 17)


def test_offline_uuid_is_hyphenated_md5():
    # md5("Player") = 636da1d35e805b00eae0fcd8333f9234
    assert offline_uuid("Player") == "636da1d3-5e80-5b00-eae0-fcd8333f9234"
    assert [len(part) for part in offline_uuid("Steve").split("-")] == [8, 4, 4, 4, 12]


@pytest.mark.asyncio
async def test_runtime_options_from_offline_profile():
    options = await RuntimeOptions.offline("Player", ram_max="4G")
    assert options.username == "Player"
    assert options.uuid == "636da1d3-5e80-5b00-eae0-fcd8333f9234"
    assert options.access_token == "null"
    assert options.ram_max == "4G"


@pytest.mark.asyncio
@pytest.mark.parametrize("username", ["", "x" * 17])
async def test_runtime_options_reject_invalid_names(username):
    with pytest.raises(ValueError):
        await RuntimeOptions.offline(username)


def test_explicit_player_uuid_wins():
    options = RuntimeOptions(username="Player", player_uuid="00000000-0000-0000-0000-000000000001")
    assert options.uuid == "00000000-0000-0000-0000-000000000001"
