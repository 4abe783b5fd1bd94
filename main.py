import asyncio
import sys
from kaia_mcp.server import main as run_server

def main():
    """Launch the KAIA MCP Server"""
    print("Starting KAIA MCP Server...", file=sys.stderr)
    asyncio.run(run_server())

if __name__ == "__main__":
    main()
