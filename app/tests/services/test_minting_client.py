import json

import httpx
import pytest

from app.core.errors import ExternalServiceError
from app.services.minting_client import TRANSFER_TOPIC, EngineMintingClient, token_id_from_logs

ZERO_TOPIC = "0x" + "0" * 64
OWNER_TOPIC = "0x" + "0" * 24 + "ab" * 20


def _client(handler):
    http = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://engine.test")
    return EngineMintingClient(
        base_url="http://engine.test",
        secret_key="s3cret",
        backend_wallet="0xbackend",
        chain="POLYGON",
        contract_address="0xcontract",
        image_url="https://img.test/deed.png",
        timeout_seconds=5,
        poll_interval_seconds=0,
        http=http,
    )


def test_token_id_from_transfer_log():
    logs = [
        {"topics": ["0xdeadbeef"]},
        {"topics": [TRANSFER_TOPIC, ZERO_TOPIC, OWNER_TOPIC, hex(42)]},
    ]
    assert token_id_from_logs(logs) == "42"


def test_token_id_ignores_non_mint_transfers():
    logs = [{"topics": [TRANSFER_TOPIC, OWNER_TOPIC, OWNER_TOPIC, hex(5)]}]
    assert token_id_from_logs(logs) is None
    assert token_id_from_logs([]) is None


def test_mint_queues_polls_and_reads_receipt():
    seen = []
    statuses = iter(["queued", "mined"])

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.url.path == "/contract/polygon/0xcontract/erc721/mint-to":
            body = json.loads(request.content)
            assert body["receiver"] == "0xowner"
            assert body["metadata"]["image"] == "https://img.test/deed.png"
            return httpx.Response(200, json={"result": {"queueId": "q-1"}})
        if request.url.path == "/transaction/status/q-1":
            state = next(statuses)
            return httpx.Response(200, json={"result": {"status": state, "transactionHash": "0xminted"}})
        if request.url.path == "/transaction/polygon/tx-hash/0xminted":
            return httpx.Response(
                200,
                json={"result": {"logs": [{"topics": [TRANSFER_TOPIC, ZERO_TOPIC, OWNER_TOPIC, hex(9)]}]}},
            )
        return httpx.Response(404)

    client = _client(handler)
    resp = client.mint(to_address="0xowner", metadata={"name": "WorldTile Deed - x", "description": "d"})

    assert resp.token_id == "9"
    assert resp.transaction_hash == "0xminted"
    assert [p for _, p in seen].count("/transaction/status/q-1") == 2


def test_mint_falls_back_to_tx_hash_without_logs():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/mint-to"):
            return httpx.Response(200, json={"result": {"queueId": "q-2"}})
        if request.url.path == "/transaction/status/q-2":
            return httpx.Response(200, json={"result": {"status": "mined", "transactionHash": "0xnologs"}})
        return httpx.Response(200, json={"result": {"logs": []}})

    resp = _client(handler).mint(to_address="0xowner", metadata={"name": "n", "description": "d"})
    assert resp.token_id == "0xnologs"


def test_engine_errors_become_external_service_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(ExternalServiceError):
        _client(handler).mint(to_address="0xowner", metadata={"name": "n", "description": "d"})


def test_errored_transaction_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/mint-to"):
            return httpx.Response(200, json={"result": {"queueId": "q-3"}})
        return httpx.Response(200, json={"result": {"status": "errored", "errorMessage": "out of gas"}})

    with pytest.raises(ExternalServiceError):
        _client(handler).mint(to_address="0xowner", metadata={"name": "n", "description": "d"})


def test_from_settings_requires_engine_config(settings):
    assert EngineMintingClient.from_settings(settings) is None
