"""CryptoTerminal - REST API package."""
