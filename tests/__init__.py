"""Tests for CryptoTerminal."""
