"""Seed prices and per-ticker parameters for the market simulator."""

# Realistic starting prices (VND) for a default HOSE universe
SEED_PRICES: dict[str, float] = {
    "VNM": 68_000,
    "FPT": 125_000,
    "VCB": 92_000,
    "BID": 47_000,
    "TCB": 24_000,
    "HPG": 27_000,
    "VIC": 42_000,
    "MWG": 61_000,
    "MSN": 75_000,
    "SSI": 33_000,
}

# Per-ticker GBM parameters
# sigma: annualized volatility (higher = more price movement)
# mu: annualized drift / expected return
TICKER_PARAMS: dict[str, dict[str, float]] = {
    "VNM": {"sigma": 0.20, "mu": 0.03},
    "FPT": {"sigma": 0.30, "mu": 0.10},  # Growth name, strong drift
    "VCB": {"sigma": 0.22, "mu": 0.05},
    "BID": {"sigma": 0.26, "mu": 0.05},
    "TCB": {"sigma": 0.30, "mu": 0.05},
    "HPG": {"sigma": 0.35, "mu": 0.04},  # Steel, cyclical
    "VIC": {"sigma": 0.45, "mu": 0.00},  # High volatility
    "MWG": {"sigma": 0.32, "mu": 0.05},
    "MSN": {"sigma": 0.30, "mu": 0.04},
    "SSI": {"sigma": 0.40, "mu": 0.06},  # Brokerage, market beta
}

# Typical daily volume (shares) used to seed average_volume
AVERAGE_VOLUMES: dict[str, float] = {
    "VNM": 3_000_000,
    "FPT": 5_000_000,
    "VCB": 2_000_000,
    "BID": 2_500_000,
    "TCB": 9_000_000,
    "HPG": 25_000_000,
    "VIC": 6_000_000,
    "MWG": 7_000_000,
    "MSN": 3_500_000,
    "SSI": 20_000_000,
}

# Default parameters for tickers not in the list above (dynamically added)
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.30, "mu": 0.05}
DEFAULT_AVERAGE_VOLUME = 1_000_000

# Correlation groups for the simulator's Cholesky decomposition
# Tickers in the same group have higher intra-group correlation
CORRELATION_GROUPS: dict[str, set[str]] = {
    "banks": {"VCB", "BID", "TCB", "SSI"},
    "consumer": {"VNM", "MWG", "MSN"},
}

# Correlation coefficients
INTRA_BANK_CORR = 0.6  # Banks and brokers move together
INTRA_CONSUMER_CORR = 0.5
CROSS_GROUP_CORR = 0.3  # Between sectors
VIC_CORR = 0.2  # VIC does its own thing
