"""Chat relay gateway for OpenAI- and Anthropic-style completion APIs."""
