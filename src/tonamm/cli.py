"""Command line entry point.

Usage examples::

    tonamm wallet
    tonamm pool-state --pool EQ...
    tonamm quote --pool EQ... --direction ton_to_token --amount 4
    tonamm deploy-pool --code build/amm-minter.boc --content-uri https://example.com/pool.json
    tonamm add-liquidity --pool EQ... --token-wallet EQ... --ton 25 --token 100
    tonamm swap --pool EQ... --direction ton_to_token --amount 1 --min-out 3.9
    tonamm remove-liquidity --pool EQ...
    tonamm upgrade --pool EQ... --code build/amm-minter-w.boc
    tonamm collect --pool EQ...
    tonamm deploy-minter --code build/jetton-minter.boc \
        --wallet-code build/jetton-wallet.boc --content-uri https://example.com/usdc.json
    tonamm mint --minter EQ... --amount 100

Settings come from the environment or ``.env`` (see ``tonamm.config``).
With ``DRY_RUN=true`` (the default) every command runs against the
in-process ledger and nothing is broadcast.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from tonamm.address_book import AddressBook
from tonamm.amm.client import AmmClient
from tonamm.amm.derivation import AddressDeriver
from tonamm.amm.messages import minter_data, pool_data
from tonamm.amm.orchestrator import GasSchedule, LiquidityOrchestrator, WorkflowContext
from tonamm.amm.types import SwapDirection
from tonamm.amounts import format_nano, to_nano
from tonamm.boc import Address, Cell, from_boc
from tonamm.boc.serialization import BOC_MAGIC
from tonamm.config import Settings, get_settings
from tonamm.credentials import init_deploy_key
from tonamm.errors import AmmError, ConfigurationError
from tonamm.ledger.base import LedgerClient
from tonamm.ledger.rate_limit import TokenBucket
from tonamm.submitter import SequencedTransactionSubmitter
from tonamm.wallet import WalletV3R2

logger = logging.getLogger(__name__)


def read_code(path: str) -> Cell:
    """Load a single-root BOC from a binary or base64 file."""
    raw = Path(path).read_bytes()
    if raw[:4] != BOC_MAGIC:
        raw = raw.decode().strip()
    return from_boc(raw)[0]


def build_ledger(settings: Settings) -> LedgerClient:
    limiter = TokenBucket(settings.requests_per_second, settings.rate_limit_burst)
    if settings.dry_run:
        from tonamm.ledger.dryrun import DryRunLedger

        logger.info("DRY RUN MODE - nothing will be broadcast")
        return DryRunLedger(limiter=limiter)

    from tonamm.ledger.toncenter import ToncenterClient

    return ToncenterClient(
        endpoint=settings.endpoint,
        api_key=settings.ledger_api_key or None,
        limiter=limiter,
        timeout=settings.request_timeout,
    )


def build_wallet(settings: Settings) -> WalletV3R2:
    creds = init_deploy_key(settings.credentials_path, settings.wallet_address)
    address_text = settings.wallet_address or creds.wallet_address
    code = read_code(settings.wallet_code_boc) if settings.wallet_code_boc else None
    if address_text is None and code is None:
        raise ConfigurationError(
            "Set WALLET_ADDRESS or WALLET_CODE_BOC, or add wallet_address to "
            f"{settings.credentials_path}"
        )
    return WalletV3R2(
        creds.signing_key,
        workchain=settings.workchain,
        code=code,
        address=Address.parse(address_text) if address_text else None,
    )


class Runner:
    """Wires settings into the orchestrator for one CLI invocation."""

    def __init__(self, settings: Settings, ledger: LedgerClient, wallet: WalletV3R2):
        self.settings = settings
        self.ledger = ledger
        self.wallet = wallet
        lp_code = read_code(settings.lp_wallet_code_boc) if settings.lp_wallet_code_boc else None
        self.amm = AmmClient(
            ledger,
            AddressDeriver(lp_code, settings.workchain),
            fee_bps=settings.swap_fee_bps,
            quote_source=settings.quote_source,
        )
        self.orchestrator = LiquidityOrchestrator(
            self.amm,
            SequencedTransactionSubmitter(ledger, settings.seqno_poll_policy()),
            gas=GasSchedule.from_settings(settings),
            deploy_policy=settings.deploy_poll_policy(),
        )
        self.book = AddressBook()
        self.book.add(wallet.address, "Deployer-Wallet")
        self.start_balance: Optional[int] = None

    async def start(self) -> None:
        self.start_balance = await self.ledger.get_balance(self.wallet.address)

    async def spent(self) -> int:
        """TON the wallet has paid out since ``start``."""
        return self.start_balance - await self.ledger.get_balance(self.wallet.address)

    def context(self, token_wallet: Optional[str] = None) -> WorkflowContext:
        token = Address.parse(token_wallet) if token_wallet else None
        if token is not None:
            self.book.add(token, "Token-Wallet")
        return WorkflowContext(wallet=self.wallet, token_wallet=token, address_book=self.book)

    async def check_wallet(self) -> bool:
        """Log wallet status; False when the balance is below the configured minimum."""
        address = self.wallet.address
        balance = await self.ledger.get_balance(address)
        seqno = await self.ledger.get_sequence(address)
        logger.info(f"Wallet {address.to_friendly(testnet=self.settings.is_testnet)}")
        logger.info(f"  Balance: {format_nano(balance)}")
        logger.info(f"  Seqno:   {seqno}")

        minimum = to_nano(self.settings.min_wallet_balance)
        if balance < minimum:
            logger.warning(f"Wallet balance below {format_nano(minimum)}; fund it before continuing")
            return False
        return True

    async def pool_state(self, args) -> None:
        state = await self.amm.get_pool_state(Address.parse(args.pool))
        balance = await self.ledger.get_balance(state.address)
        self.book.add(state.address, "AMM-Pool")
        logger.info(f"Pool {state.address.short()}")
        logger.info(f"  Balance:       {format_nano(balance)}")
        logger.info(f"  Above reserve: {format_nano(state.excess_ton(balance))}")
        logger.info(f"  TON reserve:   {format_nano(state.ton_reserve)}")
        logger.info(f"  Token reserve: {format_nano(state.token_reserve, 'TOKEN')}")
        logger.info(f"  LP supply:     {format_nano(state.total_supply, 'LP')}")
        logger.info(f"  Price:         {state.price} token/TON")
        if state.jetton_wallet_address is not None:
            self.book.add(state.jetton_wallet_address, "Pool-Token-Wallet")

    async def quote(self, args) -> None:
        pool = Address.parse(args.pool)
        quote = await self.orchestrator.quote(pool, SwapDirection(args.direction), to_nano(args.amount))
        logger.info(
            f"{args.direction}: in={format_nano(quote.amount_in)} out={format_nano(quote.amount_out)} "
            f"rate={quote.effective_rate:.6f}"
        )

    async def deploy_pool(self, args) -> None:
        if self.amm.deriver.lp_wallet_code is None:
            raise ConfigurationError("LP_WALLET_CODE_BOC is required to build the pool's initial data")
        code = read_code(args.code)
        data = pool_data(args.content_uri, self.wallet.address, self.amm.deriver.lp_wallet_code)
        result = await self.orchestrator.deploy_pool(
            self.context(), code, data, to_nano(self.settings.deploy_pool_value)
        )
        logger.info(f"Pool {result.address.short()}: {result.status.value}")

    async def add_liquidity(self, args) -> None:
        slippage = self.settings.default_slippage_bps if args.slippage_bps is None else args.slippage_bps
        await self.orchestrator.add_liquidity(
            self.context(args.token_wallet),
            Address.parse(args.pool),
            ton_amount=to_nano(args.ton),
            token_amount=to_nano(args.token),
            slippage_bps=slippage,
        )

    async def swap(self, args) -> None:
        ctx = self.context(args.token_wallet)
        pool = Address.parse(args.pool)
        direction = SwapDirection(args.direction)
        if args.exact_output:
            result = await self.orchestrator.swap_exact_output(
                ctx, pool, direction, to_nano(args.amount), to_nano(args.max_in)
            )
        else:
            result = await self.orchestrator.swap_exact_input(
                ctx, pool, direction, to_nano(args.amount), to_nano(args.min_out)
            )
        logger.info(f"Swapped {format_nano(result.quote.amount_in)} for {format_nano(result.quote.amount_out)}")

    async def remove_liquidity(self, args) -> None:
        amount = to_nano(args.amount) if args.amount is not None else None
        await self.orchestrator.remove_liquidity(self.context(), Address.parse(args.pool), amount=amount)

    async def upgrade(self, args) -> None:
        await self.orchestrator.upgrade_pool_code(self.context(), Address.parse(args.pool), read_code(args.code))

    async def collect(self, args) -> None:
        result = await self.orchestrator.collect_funds(self.context(), Address.parse(args.pool))
        logger.info(f"Collected about {format_nano(result.amount)}")

    async def deploy_minter(self, args) -> None:
        data = minter_data(self.wallet.address, args.content_uri, read_code(args.wallet_code))
        result = await self.orchestrator.deploy_contract(
            self.context(),
            read_code(args.code),
            data,
            to_nano(self.settings.deploy_minter_value),
            label="Jetton-Minter",
        )
        logger.info(f"Jetton minter {result.address.short()}: {result.status.value}")

    async def mint(self, args) -> None:
        receiver = Address.parse(args.to) if args.to else None
        await self.orchestrator.mint_tokens(
            self.context(), Address.parse(args.minter), to_nano(args.amount), receiver
        )

    def print_address_book(self) -> None:
        for line in self.book.explorer_links(self.settings.network):
            print(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tonamm", description="TON AMM pool driver")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("wallet", help="Show deployer wallet balance and seqno")

    p = sub.add_parser("pool-state", help="Read pool reserves and supply")
    p.add_argument("--pool", required=True)

    p = sub.add_parser("quote", help="Exact-input quote without submitting")
    p.add_argument("--pool", required=True)
    p.add_argument("--direction", choices=[d.value for d in SwapDirection], required=True)
    p.add_argument("--amount", required=True, help="Input amount (decimal)")

    p = sub.add_parser("deploy-pool", help="Deploy the pool if not already deployed")
    p.add_argument("--code", required=True, help="Pool code BOC file (binary or base64)")
    p.add_argument("--content-uri", required=True)

    p = sub.add_parser("add-liquidity", help="Deposit TON and tokens")
    p.add_argument("--pool", required=True)
    p.add_argument("--token-wallet", required=True, help="Your jetton wallet for the pool's token")
    p.add_argument("--ton", required=True)
    p.add_argument("--token", required=True)
    p.add_argument("--slippage-bps", type=int, default=None)

    p = sub.add_parser("swap", help="Swap through the pool")
    p.add_argument("--pool", required=True)
    p.add_argument("--direction", choices=[d.value for d in SwapDirection], required=True)
    p.add_argument("--amount", required=True, help="Input amount, or output amount with --exact-output")
    p.add_argument("--min-out", default="0")
    p.add_argument("--max-in", default=None)
    p.add_argument("--exact-output", action="store_true")
    p.add_argument("--token-wallet", default=None)

    p = sub.add_parser("remove-liquidity", help="Burn LP units")
    p.add_argument("--pool", required=True)
    p.add_argument("--amount", default=None, help="LP amount (default: all)")

    p = sub.add_parser("upgrade", help="Replace the pool code (admin)")
    p.add_argument("--pool", required=True)
    p.add_argument("--code", required=True, help="New pool code BOC file")

    p = sub.add_parser("collect", help="Sweep the pool's TON above its reserve (admin)")
    p.add_argument("--pool", required=True)

    p = sub.add_parser("deploy-minter", help="Deploy a jetton minter for test tokens")
    p.add_argument("--code", required=True, help="Jetton minter code BOC file")
    p.add_argument("--wallet-code", required=True, help="Jetton wallet code BOC file")
    p.add_argument("--content-uri", required=True)

    p = sub.add_parser("mint", help="Mint test tokens from a minter you administer")
    p.add_argument("--minter", required=True)
    p.add_argument("--amount", required=True)
    p.add_argument("--to", default=None, help="Receiver (default: the deployer wallet)")

    return parser


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "swap" and args.exact_output and args.max_in is None:
        logger.error("--exact-output requires --max-in")
        return 2

    ledger = build_ledger(settings)
    runner = None
    try:
        runner = Runner(settings, ledger, build_wallet(settings))
        if args.command == "wallet":
            return 0 if await runner.check_wallet() else 1

        handler = {
            "pool-state": runner.pool_state,
            "quote": runner.quote,
            "deploy-pool": runner.deploy_pool,
            "add-liquidity": runner.add_liquidity,
            "swap": runner.swap,
            "remove-liquidity": runner.remove_liquidity,
            "upgrade": runner.upgrade,
            "collect": runner.collect,
            "deploy-minter": runner.deploy_minter,
            "mint": runner.mint,
        }[args.command]
        await runner.start()
        await handler(args)
        logger.info(f"Deployer spent about {format_nano(await runner.spent())}")
        return 0
    except AmmError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await ledger.close()
        if runner is not None:
            runner.print_address_book()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
