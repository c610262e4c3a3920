"""Data models for messages, events, tools and chats."""
