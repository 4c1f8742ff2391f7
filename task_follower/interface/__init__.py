"""Adapters for Google Sheets, Telegram and the HTTP surface."""
