# app/services/minting_client.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.config import Settings
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
ZERO_ADDRESS = "0x" + "0" * 40


@dataclass(frozen=True)
class MintResponse:
    token_id: str
    transaction_hash: str
    image_url: Optional[str] = None


class MintingClient(Protocol):
    """
    Contract of the external minting collaborator.
    Any exception raised by `mint` is treated as retryable.
    """

    def mint(self, *, to_address: str, metadata: Dict[str, Any]) -> MintResponse:
        ...


def token_id_from_logs(logs: List[Dict[str, Any]]) -> Optional[str]:
    """
    ERC721 mint = Transfer event whose `from` topic is the zero address;
    topics[3] carries the token id.
    """
    for log in logs or []:
        topics = log.get("topics") or []
        if len(topics) < 4:
            continue
        if topics[0] and topics[0].lower() != TRANSFER_TOPIC:
            continue
        sender = "0x" + topics[1][-40:]
        if sender.lower() == ZERO_ADDRESS:
            return str(int(topics[3], 16))
    return None


class EngineMintingClient:
    """
    Minting through a thirdweb Engine style HTTP API.

    Built once at process start (create_app / maintenance entry point) and
    handed to the minting coordinator. Owns one httpx.Client.
    """

    TERMINAL_FAILURES = {"errored", "cancelled"}

    def __init__(
        self,
        *,
        base_url: str,
        secret_key: str,
        backend_wallet: str,
        chain: str,
        contract_address: str,
        image_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 2.0,
        http: Optional[httpx.Client] = None,
    ):
        self.chain = chain.lower()
        self.contract_address = contract_address
        self.image_url = image_url
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.http = http or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(30.0),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "x-backend-wallet-address": backend_wallet,
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["EngineMintingClient"]:
        if not (settings.minting_engine_url and settings.minting_secret_key and settings.minting_backend_wallet):
            logger.warning("[minting] engine not configured; minting disabled")
            return None
        return cls(
            base_url=settings.minting_engine_url,
            secret_key=settings.minting_secret_key,
            backend_wallet=settings.minting_backend_wallet,
            chain=settings.nft_chain,
            contract_address=settings.nft_contract_address,
            image_url=settings.nft_image_url,
            timeout_seconds=settings.minting_timeout_seconds,
        )

    def close(self) -> None:
        self.http.close()

    # ───── HTTP helpers ─────

    def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = self.http.request(method, path, **kwargs)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"Minting engine returned {e.response.status_code}.",
                meta={"path": path, "body": e.response.text[:500]},
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError(f"Minting engine unreachable: {e}", meta={"path": path})
        return body.get("result", body) if isinstance(body, dict) else {}

    def _wait_for_hash(self, queue_id: str) -> str:
        deadline = time.monotonic() + self.timeout_seconds
        while True:
            status = self._call("GET", f"/transaction/status/{queue_id}")
            state = (status.get("status") or "").lower()
            if state == "mined" and status.get("transactionHash"):
                return status["transactionHash"]
            if state in self.TERMINAL_FAILURES:
                raise ExternalServiceError(
                    "Mint transaction failed.",
                    meta={"queue_id": queue_id, "reason": status.get("errorMessage")},
                )
            if time.monotonic() >= deadline:
                raise ExternalServiceError("Timed out waiting for mint transaction.", meta={"queue_id": queue_id})
            time.sleep(self.poll_interval_seconds)

    # ───── Public API ─────

    def mint(self, *, to_address: str, metadata: Dict[str, Any]) -> MintResponse:
        nft = dict(metadata)
        if self.image_url:
            nft.setdefault("image", self.image_url)
        if not nft.get("description"):
            nft["description"] = f"Virtual Land Deed for {nft.get('name', '')}"

        logger.info("[minting] mint requested to=%s name=%s", to_address, nft.get("name"))
        queued = self._call(
            "POST",
            f"/contract/{self.chain}/{self.contract_address}/erc721/mint-to",
            json={"receiver": to_address, "metadata": nft},
        )
        queue_id = queued.get("queueId")
        if not queue_id:
            raise ExternalServiceError("Minting engine returned no queue id.", meta={"response": queued})

        tx_hash = self._wait_for_hash(queue_id)
        receipt = self._call("GET", f"/transaction/{self.chain}/tx-hash/{tx_hash}")

        token_id = token_id_from_logs(receipt.get("logs") or [])
        if token_id is None:
            # no Transfer log found; the hash still identifies the mint
            logger.warning("[minting] token id not found in logs tx=%s", tx_hash)
            token_id = tx_hash

        logger.info("[minting] minted token=%s tx=%s", token_id, tx_hash)
        return MintResponse(token_id=token_id, transaction_hash=tx_hash, image_url=self.image_url)
