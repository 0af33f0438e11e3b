"""TON HTTP API v2 (toncenter-compatible) JSON-RPC client.

Uses ``getAddressInformation``, ``runGetMethod`` and ``sendBoc``. Every
request waits on the shared token bucket first. Throttling (HTTP 429 or an
RPC error with code 429) is raised as ``RpcThrottledError`` for the caller
to back off; it is not retried here.
"""

import base64
import logging
from typing import Any, Optional, Sequence

import httpx

from tonamm.boc import Address, Cell, cell_from_b64, from_boc, to_boc_b64
from tonamm.errors import CellError, LedgerError, ReplyShapeError, RpcThrottledError
from tonamm.ledger.base import AccountState, ContractStatus, LedgerClient, StackValue, SubmitReceipt
from tonamm.ledger.rate_limit import TokenBucket

logger = logging.getLogger(__name__)

SANDBOX_ENDPOINT = "https://sandbox.tonhubapi.com/jsonRPC"
TESTNET_ENDPOINT = "https://testnet.toncenter.com/api/v2/jsonRPC"
MAINNET_ENDPOINT = "https://toncenter.com/api/v2/jsonRPC"


class ToncenterClient(LedgerClient):
    """JSON-RPC ledger client.

    Args:
        endpoint: JSON-RPC URL
        api_key: Optional API key for higher rate limits
        limiter: Shared token bucket
        http_client: Pre-built httpx client (tests inject a MockTransport)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        endpoint: str = SANDBOX_ENDPOINT,
        api_key: Optional[str] = None,
        limiter: Optional[TokenBucket] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(limiter)
        self.endpoint = endpoint
        self.api_key = api_key
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._request_id = 0

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, method: str, params: dict) -> Any:
        await self.limiter.acquire()

        self._request_id += 1
        payload = {"id": self._request_id, "jsonrpc": "2.0", "method": method, "params": params}

        try:
            response = await self._http().post(self.endpoint, json=payload, headers=self._get_headers())
        except httpx.HTTPError as e:
            logger.error(f"Ledger RPC {method} transport error: {e}")
            raise LedgerError(f"{method} failed: {type(e).__name__}: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"Ledger RPC {method} throttled (HTTP 429)")
            raise RpcThrottledError(
                f"{method} throttled", float(retry_after) if retry_after else None
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LedgerError(f"{method}: non-JSON response (HTTP {response.status_code})") from e

        if not data.get("ok", False):
            code = data.get("code")
            error = data.get("error", "unknown error")
            if code == 429:
                logger.warning(f"Ledger RPC {method} throttled: {error}")
                raise RpcThrottledError(f"{method} throttled: {error}")
            logger.error(f"Ledger RPC {method} error {code}: {error}")
            raise LedgerError(f"{method} error {code}: {error}")

        return data.get("result")

    async def get_account_state(self, address: Address) -> AccountState:
        result = await self._rpc("getAddressInformation", {"address": address.to_friendly()})
        try:
            balance = int(result.get("balance", 0))
            status = ContractStatus(result.get("state", "uninitialized"))
        except (AttributeError, ValueError) as e:
            raise ReplyShapeError(f"getAddressInformation: unexpected result {result!r}") from e
        return AccountState(address=address, balance=balance, status=status)

    async def _run_get_method(
        self, address: Address, method: str, args: Sequence[StackValue]
    ) -> tuple[int, list[StackValue]]:
        result = await self._rpc(
            "runGetMethod",
            {
                "address": address.to_friendly(),
                "method": method,
                "stack": [encode_stack_entry(arg) for arg in args],
            },
        )
        if not isinstance(result, dict):
            raise ReplyShapeError(f"runGetMethod {method}: unexpected result {result!r}")
        exit_code = int(result.get("exit_code", 0))
        stack = [decode_stack_entry(method, entry) for entry in result.get("stack", [])]
        return exit_code, stack

    async def call_read_method(
        self, address: Address, method: str, args: Sequence[StackValue] = ()
    ) -> list[StackValue]:
        exit_code, stack = await self._run_get_method(address, method, args)
        if exit_code != 0:
            raise LedgerError(f"{method} on {address.short()} exited with code {exit_code}")
        return stack

    async def get_sequence(self, address: Address) -> int:
        exit_code, stack = await self._run_get_method(address, "seqno", ())
        if exit_code != 0:
            if not await self.is_deployed(address):
                return 0
            raise LedgerError(f"seqno on {address.short()} exited with code {exit_code}")
        if len(stack) != 1 or not isinstance(stack[0], int):
            raise ReplyShapeError(f"seqno: unexpected stack {stack!r}")
        return stack[0]

    async def submit_signed_message(self, boc: bytes) -> SubmitReceipt:
        message_hash = from_boc(boc)[0].hash.hex()
        result = await self._rpc("sendBoc", {"boc": base64.b64encode(boc).decode()})
        logger.info(f"Submitted external message {message_hash[:16]}")
        detail = result.get("@type") if isinstance(result, dict) else None
        return SubmitReceipt(accepted=True, message_hash=message_hash, detail=detail)


def encode_stack_entry(value: StackValue) -> list:
    if isinstance(value, Cell):
        return ["tvm.Slice", to_boc_b64(value)]
    return ["num", str(value)]


def decode_stack_entry(method: str, entry: Any) -> StackValue:
    if not isinstance(entry, (list, tuple)) or len(entry) != 2:
        raise ReplyShapeError(f"{method}: malformed stack entry {entry!r}")

    kind, value = entry
    if kind == "num":
        try:
            return int(value, 16) if isinstance(value, str) else int(value)
        except ValueError as e:
            raise ReplyShapeError(f"{method}: bad number {value!r}") from e

    if kind in ("cell", "slice", "tvm.Cell", "tvm.Slice"):
        raw = value.get("bytes") if isinstance(value, dict) else value
        if not isinstance(raw, str):
            raise ReplyShapeError(f"{method}: {kind} entry without bytes")
        try:
            return cell_from_b64(raw)
        except CellError as e:
            raise ReplyShapeError(f"{method}: undecodable {kind}: {e}") from e

    raise ReplyShapeError(f"{method}: unsupported stack entry type {kind!r}")
