"""KAIA MCP server: DragonSwap trading, KiloLend lending and wallet tools for AI agents."""

__version__ = "0.1.0"
