"""
Unit tests for the Discord REST client, channel provisioner and notifier

Tests:
- Request building and JSON handling
- Retry logic on rate limits and server errors
- Error mapping (404 vs other failures)
- Provisioner payloads
- Notifier failure reporting
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
import httpx

from ticketdesk.models.messages import StructuredMessage
from ticketdesk.models.schemas import ChannelHandle, OverwriteTarget, VisibilityRule
from ticketdesk.services.channel_provisioner import DiscordChannelProvisioner
from ticketdesk.services.discord_client import DiscordAPIError, DiscordRestClient
from ticketdesk.services.notifier import DiscordNotifier

BASE_URL = "https://discord.test/api"


def make_response(status_code: int, json=None, headers=None) -> httpx.Response:
    request = httpx.Request("GET", BASE_URL)
    if json is None:
        return httpx.Response(status_code, headers=headers, request=request)
    return httpx.Response(status_code, json=json, headers=headers, request=request)


@pytest.fixture
def rest_client():
    return DiscordRestClient(token="bot-token", base_url=BASE_URL, timeout=5.0, max_retries=3)


@pytest.fixture
def mock_api():
    """Fixture for a mocked client.request on a patched httpx.AsyncClient"""
    with patch("httpx.AsyncClient") as mock_client:
        request = AsyncMock()
        mock_client.return_value.__aenter__.return_value.request = request
        yield request


class TestRestClient:
    def test_client_initialization(self, rest_client):
        assert rest_client.base_url == BASE_URL
        assert rest_client.headers["Authorization"] == "Bot bot-token"
        assert rest_client.timeout == 5.0
        assert rest_client.max_retries == 3

    @pytest.mark.asyncio
    async def test_successful_request(self, rest_client, mock_api):
        mock_api.return_value = make_response(200, json={"id": "123", "name": "ticket-0001"})

        result = await rest_client.get("channels/123")

        assert result == {"id": "123", "name": "ticket-0001"}
        kwargs = mock_api.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == f"{BASE_URL}/channels/123"

    @pytest.mark.asyncio
    async def test_empty_response(self, rest_client, mock_api):
        mock_api.return_value = make_response(204)

        assert await rest_client.delete("channels/123") is None

    @pytest.mark.asyncio
    async def test_retry_on_rate_limit(self, rest_client, mock_api):
        mock_api.side_effect = [
            make_response(429, json={"message": "You are being rate limited."}, headers={"Retry-After": "0.5"}),
            make_response(200, json={"id": "1"}),
        ]

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await rest_client.post("channels/1/messages", json={"content": "hi"})

        assert result == {"id": "1"}
        assert mock_api.call_count == 2
        mock_sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, rest_client, mock_api):
        mock_api.return_value = make_response(502, json={"message": "Bad Gateway"})

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(DiscordAPIError) as exc_info:
                await rest_client.get("channels/1")

        assert exc_info.value.status_code == 502
        assert mock_api.call_count == 3
        # Exponential backoff without Retry-After
        assert [call.args[0] for call in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, rest_client, mock_api):
        mock_api.return_value = make_response(404, json={"message": "Unknown Channel", "code": 10003})

        with pytest.raises(DiscordAPIError) as exc_info:
            await rest_client.get("channels/404")

        assert exc_info.value.not_found
        assert exc_info.value.body["code"] == 10003
        assert mock_api.call_count == 1

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, rest_client, mock_api):
        mock_api.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(httpx.ConnectError):
            await rest_client.get("channels/1")


@pytest.fixture
def api():
    client = MagicMock()
    client.get = AsyncMock()
    client.post = AsyncMock()
    client.patch = AsyncMock()
    client.put = AsyncMock()
    client.delete = AsyncMock()
    return client


class TestChannelProvisioner:
    @pytest.mark.asyncio
    async def test_missing_channel_resolves_to_none(self, api):
        api.get.side_effect = DiscordAPIError(404, "Unknown Channel")

        assert await DiscordChannelProvisioner(api).get("gone") is None

    @pytest.mark.asyncio
    async def test_other_lookup_errors_propagate(self, api):
        api.get.side_effect = DiscordAPIError(403, "Missing Access")

        with pytest.raises(DiscordAPIError):
            await DiscordChannelProvisioner(api).get("hidden")

    @pytest.mark.asyncio
    async def test_create_sends_overwrites_and_parent(self, api):
        api.post.return_value = {"id": "900", "guild_id": "guild-1", "name": "ticket-new", "parent_id": "cat-1"}
        rules = [VisibilityRule(target_id="guild-1", target_type=OverwriteTarget.ROLE, deny=1024)]

        channel = await DiscordChannelProvisioner(api).create("guild-1", "cat-1", "ticket-new", rules)

        assert channel.id == "900"
        endpoint = api.post.call_args.args[0]
        payload = api.post.call_args.kwargs["json"]
        assert endpoint == "guilds/guild-1/channels"
        assert payload["parent_id"] == "cat-1"
        assert payload["permission_overwrites"] == [{"id": "guild-1", "type": 0, "allow": "0", "deny": "1024"}]

    @pytest.mark.asyncio
    async def test_set_visibility_puts_overwrite(self, api):
        rule = VisibilityRule(target_id="user-1", allow=3072)

        await DiscordChannelProvisioner(api).set_visibility(ChannelHandle(id="900"), rule)

        api.put.assert_awaited_once_with(
            "channels/900/permissions/user-1",
            json={"type": 1, "allow": "3072", "deny": "0"},
        )

    @pytest.mark.asyncio
    async def test_rename_without_body_keeps_handle(self, api):
        api.patch.return_value = None

        channel = await DiscordChannelProvisioner(api).rename(ChannelHandle(id="900", name="ticket-new"), "ticket-0001")

        assert channel.name == "ticket-0001"


class TestNotifier:
    @pytest.mark.asyncio
    async def test_send_returns_message_id(self, api):
        api.post.return_value = {"id": "m-1"}

        result = await DiscordNotifier(api).send("900", StructuredMessage(title="Hello"))

        assert result.delivered
        assert result.message_id == "m-1"

    @pytest.mark.asyncio
    async def test_send_failure_is_reported(self, api):
        api.post.side_effect = DiscordAPIError(403, "Missing Access")

        result = await DiscordNotifier(api).send("900", StructuredMessage(title="Hello"))

        assert not result.delivered
        assert "403" in result.error

    @pytest.mark.asyncio
    async def test_direct_message_opens_dm_channel(self, api):
        api.post.side_effect = [{"id": "dm-9"}, {"id": "m-2"}]

        result = await DiscordNotifier(api).direct_message("user-1", StructuredMessage(title="Closed"))

        assert result.delivered
        assert result.channel_id == "dm-9"
        assert api.post.await_args_list[0].kwargs["json"] == {"recipient_id": "user-1"}

    @pytest.mark.asyncio
    async def test_closed_dms_are_reported(self, api):
        api.post.side_effect = DiscordAPIError(403, "Cannot send messages to this user")

        result = await DiscordNotifier(api).direct_message("user-1", StructuredMessage(title="Closed"))

        assert not result.delivered

    @pytest.mark.asyncio
    async def test_edit_failure_is_reported(self, api):
        api.patch.side_effect = httpx.ReadTimeout("timed out")

        result = await DiscordNotifier(api).edit("900", "m-1", StructuredMessage(title="Hi"))

        assert not result.delivered
