"""Services backing the chat API."""
