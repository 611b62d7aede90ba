"""Well-known wallet owners."""

# Receives the platform commission of every settlement
PLATFORM_COMMISSION_WALLET = "PLATFORM_COMMISSION"
