"""claimgate: redeem off-chain signed token claims, one-shot or vested."""

__version__ = "0.1.0"
