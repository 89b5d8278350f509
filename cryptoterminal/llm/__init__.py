"""
CryptoTerminal - LLM Module

Gateway to the generative AI model that orchestrates the analysis.
"""

from cryptoterminal.llm.gemini import ModelGateway, response_text

__all__ = ["ModelGateway", "response_text"]
