"""GPT Helper: route editor selections to OpenAI, Anthropic, or Gemini."""

__version__ = "0.1.0"
