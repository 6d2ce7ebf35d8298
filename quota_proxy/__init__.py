"""GPT quota proxy: monthly usage quotas in front of a chat completion API."""

__version__ = "1.0.0"
