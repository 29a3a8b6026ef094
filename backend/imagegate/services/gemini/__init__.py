"""Gemini API integration."""
from imagegate.services.gemini.client import GeminiClient
from imagegate.services.gemini.models import GeneratedImage, GenerateContentResponse
from imagegate.services.gemini.prompts import CompiledPrompt, compile_prompt

__all__ = [
    "GeminiClient",
    "GeneratedImage",
    "GenerateContentResponse",
    "CompiledPrompt",
    "compile_prompt",
]
