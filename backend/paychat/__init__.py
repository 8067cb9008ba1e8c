"""Pay-per-message chat gateway (x402 / Solana USDC)."""

__version__ = "0.1.0"
