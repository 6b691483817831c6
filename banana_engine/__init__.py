"""banana: Gemini image generation with resumable sessions."""

__version__ = "0.4.0"
