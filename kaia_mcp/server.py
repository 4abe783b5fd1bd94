#!/usr/bin/env python3
"""
KAIA MCP Server (FastMCP Implementation)
Provides AI agents with DragonSwap trading, KiloLend lending and wallet tools on Kaia.
"""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from web3 import Web3

from mcp.server.fastmcp import FastMCP, Context

from .chain import ChainClient, TransactionSigner
from .config import (
    DEFAULT_DEADLINE_MINUTES,
    DEFAULT_SLIPPAGE_BPS,
    DRAGONSWAP_CONTRACTS,
    Settings,
    load_settings,
)
from .errors import TransactionError
from .fixed_point import format_amount, human_price, sqrt_price_x96_to_price, tick_to_price
from .kilolend import KiloLendClient
from .pool_reader import PoolStateReader
from .prices import PriceClient
from .quoting import FeeTier, fee_tier_name, validate_slippage
from .swap import SwapExecutor, SwapQuoteService, validate_deadline
from .tokens import display_symbol, pool_token, resolve_token
from .wallet import WalletService

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


@dataclass
class KaiaMCPContext:
    """Context for the KAIA MCP server."""
    settings: Settings
    web3: Web3
    http_client: httpx.AsyncClient
    chain: ChainClient
    signer: TransactionSigner
    reader: PoolStateReader
    quote_service: SwapQuoteService
    swap_executor: SwapExecutor
    price_client: PriceClient
    lending: KiloLendClient
    wallet: WalletService


def build_context(settings: Settings, web3: Web3, http_client: httpx.AsyncClient) -> KaiaMCPContext:
    """Wire the services around one web3 client and one HTTP client."""
    chain = ChainClient(web3, settings.network.multicall_address)
    signer = TransactionSigner(web3, settings.private_key if settings.is_transaction_mode else None)
    reader = PoolStateReader(chain, DRAGONSWAP_CONTRACTS["factory"], list(FeeTier))
    quote_service = SwapQuoteService(reader)
    price_client = PriceClient(http_client, settings.price_url, settings.price_timeout)
    return KaiaMCPContext(
        settings=settings,
        web3=web3,
        http_client=http_client,
        chain=chain,
        signer=signer,
        reader=reader,
        quote_service=quote_service,
        swap_executor=SwapExecutor(quote_service, chain, signer, DRAGONSWAP_CONTRACTS["swap_router"]),
        price_client=price_client,
        lending=KiloLendClient(chain, signer, reader, price_client),
        wallet=WalletService(chain, signer, reader, price_client),
    )


@asynccontextmanager
async def kaia_lifespan(server: FastMCP) -> AsyncIterator[KaiaMCPContext]:
    """Manages the KAIA client lifecycle."""
    settings = load_settings()

    web3 = Web3(Web3.HTTPProvider(settings.rpc_url))
    http_client = httpx.AsyncClient(timeout=settings.price_timeout)
    context = build_context(settings, web3, http_client)

    logger.info(f"Connected to {settings.network.name} ({settings.network.chain_id}) via {settings.rpc_url}")
    if context.signer.can_sign:
        logger.info(f"Transaction mode enabled for address: {context.signer.address}")
    else:
        logger.info("Running in readonly mode")

    try:
        yield context
    finally:
        await http_client.aclose()
        logger.info("KAIA MCP server shutdown complete")


# Initialize FastMCP server
mcp = FastMCP(
    "kaia-mcp",
    instructions="MCP server for DragonSwap trading, KiloLend lending and wallet operations on Kaia",
    lifespan=kaia_lifespan,
)


def error_response(error: Exception) -> str:
    """Structured failure payload for tool output."""
    result: Dict[str, Any] = {"success": False, "error": str(error)}
    if isinstance(error, TransactionError) and error.tx_hash:
        result["txHash"] = error.tx_hash
    return json.dumps(result, indent=2)


def explorer_url(kaia_ctx: KaiaMCPContext, tx_hash: str) -> str:
    return f"{kaia_ctx.settings.network.explorer_url}/tx/{tx_hash}"


# ===== DragonSwap tools =====

@mcp.tool()
async def get_dragonswap_quote(ctx: Context, tokenIn: str, tokenOut: str, amountIn: str,
                               amountInDecimals: Optional[int] = None,
                               slippage: int = DEFAULT_SLIPPAGE_BPS) -> str:
    """Get the best exact-input swap quote on DragonSwap V3 across all fee tiers.

    Args:
        tokenIn: Input token symbol (e.g. KAIA, USDT) or address. KAIA is native.
        tokenOut: Output token symbol or address
        amountIn: Human-readable input amount, e.g. "1.5"
        amountInDecimals: Decimals of the input token (read on-chain if omitted)
        slippage: Slippage tolerance in basis points (50 = 0.5%)

    Returns:
        JSON string with the chosen pool, expected output and slippage-protected minimum.
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context

        token_in = resolve_token(tokenIn)
        token_out = resolve_token(tokenOut)
        validate_slippage(slippage)
        if amountInDecimals is None:
            loop = asyncio.get_event_loop()
            amountInDecimals = await loop.run_in_executor(None, kaia_ctx.reader.get_token_decimals, token_in)

        quote = await kaia_ctx.quote_service.get_quote(token_in, token_out, amountIn, amountInDecimals, slippage)

        result = {
            "success": True,
            "quote": quote.to_dict(),
            "tokenInSymbol": display_symbol(token_in),
            "tokenOutSymbol": display_symbol(token_out),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error getting DragonSwap quote: {e}")
        return error_response(e)


@mcp.tool()
async def get_dragonswap_pool_info(ctx: Context, tokenA: str, tokenB: str, fee: Optional[int] = None) -> str:
    """Get DragonSwap V3 pool state for a token pair.

    Args:
        tokenA: First token symbol or address
        tokenB: Second token symbol or address
        fee: Fee tier (100, 500, 1000, 3000, 10000); all tiers if omitted

    Returns:
        JSON string with liquidity, sqrtPriceX96, tick and human prices per pool.
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        reader = kaia_ctx.reader
        loop = asyncio.get_event_loop()

        token_a = pool_token(resolve_token(tokenA))
        token_b = pool_token(resolve_token(tokenB))

        if fee is not None:
            pool = await loop.run_in_executor(None, reader.get_pool_state, token_a, token_b, fee)
            pools = [pool] if pool is not None else []
        else:
            pools = await loop.run_in_executor(None, reader.get_all_pool_states, token_a, token_b)

        if not pools:
            return json.dumps({
                "success": False,
                "error": f"No pools found for {display_symbol(token_a)}/{display_symbol(token_b)}",
            }, indent=2)

        token0, token1 = pools[0].token0, pools[0].token1
        decimals0, decimals1 = await asyncio.gather(
            loop.run_in_executor(None, reader.get_token_decimals, token0),
            loop.run_in_executor(None, reader.get_token_decimals, token1),
        )

        pool_infos: List[Dict[str, Any]] = []
        for pool in pools:
            price0 = human_price(sqrt_price_x96_to_price(pool.sqrt_price_x96), decimals0, decimals1)
            tick_price = human_price(tick_to_price(pool.tick), decimals0, decimals1)
            pool_infos.append({
                **pool.to_dict(),
                "feeTierName": fee_tier_name(pool.fee),
                "token0Symbol": display_symbol(pool.token0),
                "token1Symbol": display_symbol(pool.token1),
                "price0": format_amount(price0),
                "price1": format_amount(1 / price0) if price0 > 0 else "0",
                "tickPrice": format_amount(tick_price),
            })

        result = {
            "success": True,
            "token0": {"address": token0, "symbol": display_symbol(token0), "decimals": decimals0},
            "token1": {"address": token1, "symbol": display_symbol(token1), "decimals": decimals1},
            "pools": pool_infos,
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error getting pool info: {e}")
        return error_response(e)


@mcp.tool()
async def execute_dragonswap_swap(ctx: Context, tokenIn: str, tokenOut: str, amountIn: str,
                                  amountInDecimals: Optional[int] = None,
                                  slippage: int = DEFAULT_SLIPPAGE_BPS,
                                  recipient: Optional[str] = None,
                                  deadline: int = DEFAULT_DEADLINE_MINUTES) -> str:
    """Execute an exact-input swap on DragonSwap V3 using the best fee tier.

    Args:
        tokenIn: Input token symbol or address. KAIA is sent as native value.
        tokenOut: Output token symbol or address
        amountIn: Human-readable input amount
        amountInDecimals: Decimals of the input token (read on-chain if omitted)
        slippage: Slippage tolerance in basis points
        recipient: Receiver of the output tokens (defaults to the wallet)
        deadline: Minutes until the swap expires

    Returns:
        JSON string with transaction hash, receipt details and the executed quote.
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context

        token_in = resolve_token(tokenIn)
        token_out = resolve_token(tokenOut)
        validate_slippage(slippage)
        validate_deadline(deadline)
        if recipient is not None:
            recipient = Web3.to_checksum_address(recipient)
        if amountInDecimals is None:
            loop = asyncio.get_event_loop()
            amountInDecimals = await loop.run_in_executor(None, kaia_ctx.reader.get_token_decimals, token_in)

        swap = await kaia_ctx.swap_executor.execute_exact_input(
            token_in, token_out, amountIn, amountInDecimals, slippage, recipient, deadline
        )

        result = {
            "success": True,
            "txHash": swap.tx_hash,
            "status": swap.status,
            "blockNumber": swap.block_number,
            "gasUsed": swap.gas_used,
            "approvalTxHash": swap.approval_tx_hash,
            "recipient": swap.recipient,
            "deadline": swap.deadline,
            "quote": swap.quote.to_dict(),
            "explorerUrl": explorer_url(kaia_ctx, swap.tx_hash),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error executing DragonSwap swap: {e}")
        return error_response(e)


# ===== Wallet tools =====

@mcp.tool()
async def kaia_get_wallet_info(ctx: Context, address: Optional[str] = None) -> str:
    """Get native KAIA and token balances with USD values.

    Args:
        address: Wallet address (defaults to the configured wallet)
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        info = await kaia_ctx.wallet.get_wallet_info(address)
        result = {
            "success": True,
            "mode": kaia_ctx.settings.agent_mode.value,
            "network": kaia_ctx.settings.network.name,
            **info,
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error getting wallet info: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_send_native_token(ctx: Context, to: str, amount: str) -> str:
    """Send native KAIA to an address.

    Args:
        to: Recipient address
        amount: Amount of KAIA, e.g. "0.5"
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        tx_hash = await kaia_ctx.wallet.send_native(to, amount)
        result = {
            "success": True,
            "txHash": tx_hash,
            "to": to,
            "amount": amount,
            "symbol": "KAIA",
            "explorerUrl": explorer_url(kaia_ctx, tx_hash),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error sending KAIA: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_send_erc20_token(ctx: Context, tokenSymbol: str, to: str, amount: str) -> str:
    """Send a known ERC-20 token to an address.

    Args:
        tokenSymbol: Token symbol (USDT, BORA, SIX, MBX, STAKED_KAIA, WKAIA, ...)
        to: Recipient address
        amount: Human-readable amount
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        tx_hash = await kaia_ctx.wallet.send_erc20(tokenSymbol, to, amount)
        result = {
            "success": True,
            "txHash": tx_hash,
            "to": to,
            "amount": amount,
            "symbol": tokenSymbol.upper(),
            "explorerUrl": explorer_url(kaia_ctx, tx_hash),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error sending {tokenSymbol}: {e}")
        return error_response(e)


# ===== KiloLend tools =====

@mcp.tool()
async def kaia_get_lending_markets(ctx: Context) -> str:
    """Get all KiloLend markets with APYs, totals, utilization and prices."""
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        markets = await kaia_ctx.lending.get_all_markets()

        summary: Dict[str, Any] = {"totalMarkets": len(markets)}
        if markets:
            summary["avgSupplyApy"] = round(sum(m["supplyApy"] for m in markets) / len(markets), 2)
            summary["avgBorrowApy"] = round(sum(m["borrowApy"] for m in markets) / len(markets), 2)
            summary["highestSupplyApy"] = max(markets, key=lambda m: m["supplyApy"])["underlyingSymbol"]
            summary["lowestBorrowApy"] = min(markets, key=lambda m: m["borrowApy"])["underlyingSymbol"]

        return json.dumps({"success": True, "markets": markets, "summary": summary}, indent=2)

    except Exception as e:
        logger.error(f"Error getting lending markets: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_get_account_liquidity(ctx: Context, accountAddress: Optional[str] = None) -> str:
    """Get KiloLend account liquidity, positions and health factor.

    Args:
        accountAddress: Account to inspect (defaults to the configured wallet)
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        liquidity = await kaia_ctx.lending.get_account_liquidity(accountAddress)
        health = liquidity["healthFactor"]
        if health < 1.2:
            status = "HIGH RISK - position may be liquidated"
        elif health < 1.5:
            status = "MODERATE RISK - consider reducing borrows"
        else:
            status = "HEALTHY"
        return json.dumps({"success": True, **liquidity, "riskStatus": status}, indent=2)

    except Exception as e:
        logger.error(f"Error getting account liquidity: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_get_lending_stats(ctx: Context) -> str:
    """Get KiloLend protocol totals: TVL, borrows, utilization and health."""
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        stats = await kaia_ctx.lending.get_protocol_stats()
        return json.dumps({"success": True, **stats}, indent=2)

    except Exception as e:
        logger.error(f"Error getting lending stats: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_supply_to_lending(ctx: Context, tokenSymbol: str, amount: str) -> str:
    """Supply tokens to a KiloLend market. ERC-20 markets are approved first.

    Args:
        tokenSymbol: Market symbol (USDT, SIX, BORA, MBX, KAIA, STAKED_KAIA)
        amount: Human-readable amount to supply
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        tx = await kaia_ctx.lending.supply(tokenSymbol, amount)
        result = {
            "success": True,
            **tx,
            "action": "supply",
            "symbol": tokenSymbol.upper(),
            "amount": amount,
            "explorerUrl": explorer_url(kaia_ctx, tx["txHash"]),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error supplying to lending: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_borrow_from_lending(ctx: Context, tokenSymbol: str, amount: str) -> str:
    """Borrow tokens from a KiloLend market against supplied collateral.

    Args:
        tokenSymbol: Market symbol
        amount: Human-readable amount to borrow
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        tx = await kaia_ctx.lending.borrow(tokenSymbol, amount)
        result = {
            "success": True,
            **tx,
            "action": "borrow",
            "symbol": tokenSymbol.upper(),
            "amount": amount,
            "explorerUrl": explorer_url(kaia_ctx, tx["txHash"]),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error borrowing from lending: {e}")
        return error_response(e)


@mcp.tool()
async def kaia_repay_lending(ctx: Context, tokenSymbol: str, amount: Optional[str] = None) -> str:
    """Repay a KiloLend borrow.

    Args:
        tokenSymbol: Market symbol
        amount: Human-readable amount to repay; repays the full debt if omitted
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        tx = await kaia_ctx.lending.repay(tokenSymbol, amount)
        result = {
            "success": True,
            **tx,
            "action": "repay",
            "symbol": tokenSymbol.upper(),
            "amount": amount or "full",
            "explorerUrl": explorer_url(kaia_ctx, tx["txHash"]),
        }
        return json.dumps(result, indent=2)

    except Exception as e:
        logger.error(f"Error repaying lending: {e}")
        return error_response(e)


# ===== Price tools =====

@mcp.tool()
async def get_all_prices(ctx: Context) -> str:
    """Get all token prices from the KiloLend price API."""
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        prices = await kaia_ctx.price_client.get_all_prices()
        return json.dumps({"success": True, **prices}, indent=2)

    except Exception as e:
        logger.error(f"Error getting prices: {e}")
        return error_response(e)


@mcp.tool()
async def get_token_prices(ctx: Context, symbols: List[str]) -> str:
    """Get prices for specific tokens.

    Args:
        symbols: Token symbols, e.g. ["KAIA", "stKAIA", "MBX"]
    """
    try:
        kaia_ctx = ctx.request_context.lifespan_context
        prices = await kaia_ctx.price_client.get_token_prices(symbols)
        return json.dumps({"success": True, **prices}, indent=2)

    except Exception as e:
        logger.error(f"Error getting token prices: {e}")
        return error_response(e)


async def main():
    """Main function to run the MCP server."""
    transport = os.getenv("TRANSPORT", "stdio")

    if transport == "stdio":
        await mcp.run_stdio_async()
    elif transport == "sse":
        await mcp.run_sse_async()
    else:
        logger.error(f"Unsupported transport: {transport}")
        return


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
